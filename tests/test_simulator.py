"""
Integration tests for the simulation driver, loss operators and runners.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from simulation.simulator import Simulator, SimulatorConfig, ConfigurationError
from simulation.loss_operator import LossRule, ScriptedLossOperator, RandomLossOperator
from simulation.runner import BatchRunner
from src.arq.sender import GBNSender, SRSender
from src.channel.channel import Direction
from src.utils.clock import EventType
from src.utils.logger import LogLevel, CATEGORY_ERROR, CATEGORY_SENDER


def make_simulator(algorithm="gbn", window_size=4, **kwargs):
    config = SimulatorConfig(
        algorithm=algorithm,
        window_size=window_size,
        log_level=LogLevel.CRITICAL,
        **kwargs
    )
    return Simulator(config)


def lose(simulator, *rules):
    operator = ScriptedLossOperator(simulator, [LossRule.parse(r) for r in rules])
    operator.attach()
    return operator


class TestSimulatorConfig:
    """Tests for SimulatorConfig class."""

    def test_defaults(self):
        """Test the default session settings."""
        config = SimulatorConfig()

        assert config.algorithm_key == "gbn"
        assert config.window_size == 4
        assert config.get_timeout() == pytest.approx(12.0)

    @pytest.mark.parametrize("changes", [
        {'algorithm': 'stop-and-wait'},
        {'window_size': 0},
        {'window_size': 2.5},
        {'window_size': True},
        {'transit_duration': 0.0},
        {'tick_interval': -1.0},
    ])
    def test_invalid_values_rejected(self, changes):
        """Test that invalid settings raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            SimulatorConfig(**changes).validate()

    def test_configuration_error_is_value_error(self):
        """Test that callers can catch plain ValueError."""
        with pytest.raises(ValueError):
            Simulator(SimulatorConfig(window_size=-1))


class TestControlSurface:
    """Tests for start / pause / resume / reset."""

    def test_start_ticks_sender(self):
        """Test that ticks emit one segment per interval until the window fills."""
        sim = make_simulator()

        assert sim.start()
        assert not sim.start()

        sim.run_for(2.0)
        assert sim.sender.packets_sent == 4
        assert [u.seq_num for u in sim.in_flight_units()] == [1, 2, 3, 4]

        sim.run_for(2.0)
        assert sim.sender.packets_sent == 4

    def test_pause_and_resume_flags(self):
        """Test pause and resume transitions."""
        sim = make_simulator()

        assert not sim.pause()
        sim.start()
        assert sim.pause()
        assert sim.paused
        assert not sim.pause()
        assert sim.resume()
        assert not sim.paused
        assert not sim.resume()

    def test_toggle_pause(self):
        """Test the single pause/resume toggle."""
        sim = make_simulator()
        sim.start()

        assert sim.toggle_pause()
        assert sim.paused
        assert sim.toggle_pause()
        assert not sim.paused

    def test_pause_freezes_session(self):
        """Test that nothing is emitted, delivered or timed out while paused."""
        sim = make_simulator()
        sim.start()
        sim.run_for(1.0)
        sim.pause()

        sim.run_for(30.0)

        assert sim.sender.packets_sent == 2
        assert sim.receiver.packets_received == 0
        assert sim.sender.timeouts == 0
        assert sim.scheduler.pending(EventType.TICK) == []

        sim.resume()
        sim.run_for(1.0)
        assert sim.receiver.packets_received >= 1
        assert sim.sender.timeouts == 0

    def test_resume_keeps_tick_cadence(self):
        """Test that a pause holds the time left until the next tick."""
        sim = make_simulator()
        sim.start()
        sim.run_for(0.75)
        assert sim.sender.packets_sent == 1

        sim.pause()
        sim.resume()
        sim.run_for(0.25)

        assert sim.sender.packets_sent == 2

    def test_operator_drop_keeps_tick_cadence(self):
        """Test that an automated delete does not delay later emissions."""
        sim = make_simulator(window_size=8)
        operator = lose(sim, "packet:1")
        sim.start()

        sim.run_for(4.0)

        assert len(operator.dropped) == 1
        assert sim.sender.packets_sent == 8

    def test_reset_is_idempotent(self):
        """Test that reset returns to a fresh session, twice in a row."""
        sim = make_simulator()
        sim.start()
        sim.run_for(20.0)

        sim.reset()
        first = sim.get_state()
        sim.reset()

        assert sim.get_state() == first
        assert not sim.running
        assert first['sender']['base'] == 1
        assert first['sender']['next_seq'] == 1
        assert first['in_flight'] == []
        assert first['delivered'] == []
        assert sim.scheduler.pending_count() == 0

    def test_restart_after_reset(self):
        """Test that a reset session starts again from sequence 1."""
        sim = make_simulator()
        sim.start()
        sim.run_for(20.0)
        sim.reset()

        sim.start()
        sim.run_for(30.0)

        assert sim.delivered[:2] == [1, 2]
        assert sim.check_invariants()

    def test_delete_requires_pause(self):
        """Test that units can only be selected and deleted while paused."""
        sim = make_simulator()
        sim.start()
        sim.run_for(1.0)
        unit = sim.in_flight_units()[0]

        assert not sim.select_unit(unit.unit_id)
        assert not sim.mark_lost(unit.unit_id)

        sim.pause()
        assert sim.select_unit(unit.unit_id)
        assert sim.delete_selected()
        assert sim.selected_unit_id is None
        assert not sim.delete_selected()
        assert sim.metrics.packets_lost == 1

    def test_realtime_pacing(self):
        """Test that the paced loop reaches the same virtual time."""
        sim = make_simulator()
        sim.start()

        sim.run_realtime(1.0, speed=50.0)

        assert sim.now == pytest.approx(1.0)
        assert sim.sender.packets_sent == 2

        with pytest.raises(ValueError):
            sim.run_realtime(1.0, speed=0)


class TestConfigure:
    """Tests for changing algorithm and window size."""

    def test_rejected_while_running(self):
        """Test that algorithm and window cannot change mid-session."""
        sim = make_simulator()
        sim.start()

        with pytest.raises(ConfigurationError):
            sim.set_algorithm("sr")
        with pytest.raises(ConfigurationError):
            sim.set_window_size(8)

        assert isinstance(sim.sender, GBNSender)
        assert sim.config.window_size == 4

    def test_invalid_change_leaves_config_untouched(self):
        """Test that a partly invalid change applies nothing."""
        sim = make_simulator()

        with pytest.raises(ConfigurationError):
            sim.configure(algorithm="sr", window_size=0)

        assert sim.algorithm == "gbn"
        assert isinstance(sim.sender, GBNSender)
        assert sim.config.window_size == 4

    def test_unknown_key_rejected(self):
        """Test that unsupported settings are refused."""
        sim = make_simulator()

        with pytest.raises(ConfigurationError):
            sim.configure(tick_interval=1.0)

    def test_switch_algorithm_when_stopped(self):
        """Test that switching algorithm rebuilds the protocol pair."""
        sim = make_simulator()
        sim.start()
        sim.run_for(10.0)
        sim.reset()

        sim.set_algorithm("SR")

        assert sim.algorithm == "sr"
        assert isinstance(sim.sender, SRSender)
        assert sim.get_state()['sender']['next_seq'] == 1

    def test_window_size_applies_to_both_sides(self):
        """Test that a new window size reaches sender and receiver."""
        sim = make_simulator()

        sim.set_window_size(8)

        assert sim.sender.window.size == 8
        assert sim.receiver.window.size == 8

    def test_transit_change_sets_timeout(self):
        """Test that the timeout follows the transit duration."""
        sim = make_simulator()

        sim.set_transit_duration(2.0)

        assert sim.context.get_timeout() == pytest.approx(6.0)

    def test_reack_toggle_while_running_keeps_session(self):
        """Test that toggling duplicate re-ACK mid-run keeps the protocol pair."""
        sim = make_simulator("gbn")
        sim.start()
        sim.run_for(12.0)
        sender, receiver = sim.sender, sim.receiver
        assert sim.delivered == [1, 2, 3, 4]

        sim.configure(gbn_reack_duplicates=True)
        sim.run_for(30.0)

        assert sim.sender is sender
        assert sim.receiver is receiver
        assert receiver.reack_duplicates
        assert sim.delivered == list(range(1, len(sim.delivered) + 1))
        assert sim.check_invariants()


class TestLossScenarios:
    """End-to-end recovery from operator-deleted units."""

    def test_gbn_recovers_lost_packet(self):
        """Test GBN: packet 2 lost, timeout on base 2, window resent in order."""
        sim = make_simulator("gbn")
        operator = lose(sim, "packet:2")
        sim.start()

        sim.run_for(60.0)

        assert len(operator.dropped) == 1
        assert sim.sender.timeouts >= 1
        assert sim.delivered[:5] == [1, 2, 3, 4, 5]
        assert sim.receiver.discarded_packets >= 2
        assert sim.check_invariants()

    def test_sr_resends_only_lost_packet(self):
        """Test SR: packet 2 lost, only 2 is resent and 3, 4 are buffered."""
        sim = make_simulator("sr")
        lose(sim, "packet:2")
        sim.start()

        sim.run_for(40.0)

        assert sim.sender.segments.get(2).send_count == 2
        for seq in (1, 3, 4, 5):
            assert sim.sender.segments.get(seq).send_count == 1
        assert sim.delivered[:5] == [1, 2, 3, 4, 5]
        assert sim.sender.base >= 6
        assert sim.check_invariants()

    def test_sr_lost_ack_recovered_by_reack(self):
        """Test SR: ACK 1 lost, the resent packet is re-acknowledged."""
        sim = make_simulator("sr")
        lose(sim, "ack:1")
        sim.start()

        sim.run_for(40.0)

        assert sim.sender.segments.get(1).send_count == 2
        assert sim.receiver.duplicate_packets >= 1
        assert sim.sender.base > 1
        assert sim.delivered[0] == 1

    def test_gbn_lost_ack_covered_by_later_ack(self):
        """Test GBN: a lost ACK is covered by the next cumulative ACK."""
        sim = make_simulator("gbn")
        lose(sim, "ack:1")
        sim.start()

        sim.run_for(20.0)

        assert sim.sender.timeouts == 0
        assert sim.sender.base >= 5

    @pytest.mark.parametrize("algorithm", ["gbn", "sr"])
    @pytest.mark.parametrize("window_size", [1, 4])
    def test_invariants_under_random_loss(self, algorithm, window_size):
        """Test window bounds and gapless delivery hold throughout a lossy run."""
        sim = make_simulator(algorithm, window_size)
        RandomLossOperator(sim, 0.3, seed=window_size).attach()
        sim.start()

        for _ in range(60):
            sim.run_for(5.0)
            assert sim.check_invariants()

        assert sim.delivered == list(range(1, len(sim.delivered) + 1))
        assert sim.metrics.packets_lost + sim.metrics.acks_lost > 0


class TestEventLog:
    """Tests for the in-memory protocol log."""

    def test_log_records_kept_below_print_level(self):
        """Test that records are kept even when not printed."""
        sim = make_simulator("gbn")
        lose(sim, "packet:2")
        sim.start()
        sim.run_for(30.0)

        errors = [r.message for r in sim.logger.get_records(CATEGORY_ERROR)]
        sent = sim.logger.get_records(CATEGORY_SENDER)

        assert "NETWORK: User deleted Packet 2!" in errors
        assert any("Timeout for Packet 2" in message for message in errors)
        assert sent[0].message == "SENDER (GBN): Sending Packet 1"
        assert sent[0].time == pytest.approx(0.5)

    def test_log_file_written(self, tmp_path):
        """Test that printed records also go to the log file."""
        path = str(tmp_path / "session.log")
        sim = make_simulator(log_file=path)
        sim.logger.set_level(LogLevel.INFO)
        sim.start()
        sim.run_for(1.0)
        sim.logger.close()

        with open(path) as f:
            content = f.read()
        assert "Simulation Started (GBN)" in content
        assert "Sending Packet 1" in content


class TestLossRule:
    """Tests for LossRule parsing."""

    def test_parse_packet(self):
        rule = LossRule.parse("packet:2")

        assert rule.direction == Direction.FORWARD
        assert rule.seq_num == 2
        assert rule.occurrence == 1

    def test_parse_ack_case_insensitive(self):
        rule = LossRule.parse("ACK:3")

        assert rule.direction == Direction.REVERSE
        assert str(rule) == "ack:3"

    def test_parse_occurrence(self):
        rule = LossRule.parse("packet:5@2")

        assert rule.occurrence == 2
        assert str(rule) == "packet:5@2"

    @pytest.mark.parametrize("text", ["frame:1", "packet", "packet:x", "packet:0", "ack:2@0"])
    def test_invalid_rules(self, text):
        """Test that malformed rules raise ValueError."""
        with pytest.raises(ValueError):
            LossRule.parse(text)

    def test_second_copy_only(self):
        """Test that an occurrence rule spares the first emission."""
        sim = make_simulator("gbn")
        operator = lose(sim, "packet:1@2")
        sim.start()

        sim.run_for(30.0)

        assert operator.dropped == []
        assert operator.pending_rules() == [LossRule(Direction.FORWARD, 1, 2)]


class TestRandomLossOperator:
    """Tests for RandomLossOperator class."""

    def test_invalid_probability(self):
        sim = make_simulator()

        with pytest.raises(ValueError):
            RandomLossOperator(sim, 1.5)

    def test_seed_reproducible(self):
        """Test that the same seed drops the same units."""
        dropped = []
        for _ in range(2):
            sim = make_simulator("sr")
            operator = RandomLossOperator(sim, 0.25, seed=11)
            operator.attach()
            sim.start()
            sim.run_for(120.0)
            dropped.append([(u.kind, u.seq_num, u.sent_at) for u in operator.dropped])

        assert dropped[0] == dropped[1]
        assert dropped[0]

    def test_zero_probability_never_drops(self):
        sim = make_simulator()
        operator = RandomLossOperator(sim, 0.0, seed=1)
        operator.attach()
        sim.start()

        sim.run_for(60.0)

        assert operator.dropped == []
        assert sim.sender.retransmissions == 0


class TestBatchRunner:
    """Tests for BatchRunner class."""

    def test_small_comparison(self, tmp_path):
        """Test a tiny sweep over both algorithms."""
        output = str(tmp_path / "comparison.csv")
        runner = BatchRunner(
            window_sizes=[2],
            loss_probabilities=[0.0, 0.2],
            runs_per_config=1,
            duration=60.0,
            output_file=output
        )

        results = runner.run_sequential()
        runner.save_results()

        assert len(results) == runner.total_runs == 4
        assert all(r['error'] is None for r in results)
        assert all(r['invariants_hold'] for r in results)
        assert os.path.exists(output)

        summary = runner.get_summary()
        assert len(summary) == 4
        assert summary.loc[('gbn', 2, 0.0), 'retransmissions'] == 0

        best = runner.get_best_configuration()
        assert best['algorithm'] in ('gbn', 'sr')

    def test_failed_run_reported(self):
        """Test that a bad configuration yields an error row, not an exception."""
        runner = BatchRunner(
            algorithms=['gbn'],
            window_sizes=[0],
            loss_probabilities=[0.0],
            runs_per_config=1,
            duration=10.0
        )

        results = runner.run_sequential()

        assert results[0]['error']
        assert runner.to_dataframe().empty

    def test_progress_bar_wraps_runs(self, monkeypatch):
        """Test that sequential runs are iterated through a tqdm progress bar."""
        import simulation.runner as runner_module
        bars = []

        def recording_tqdm(iterable, **kwargs):
            bars.append(kwargs)
            return iterable

        monkeypatch.setattr(runner_module, "tqdm", recording_tqdm)
        runner = BatchRunner(
            algorithms=['sr'],
            window_sizes=[2],
            loss_probabilities=[0.0],
            runs_per_config=2,
            duration=10.0
        )

        results = runner.run_sequential()

        assert len(results) == 2
        assert bars == [{'desc': "Simulations"}]


class TestCommandLine:
    """Tests for the main entry point."""

    def test_single_run(self, capsys):
        from main import main

        main(['--single', '--algorithm', 'sr', '--lose', 'packet:2', '--duration', '40'])

        out = capsys.readouterr().out
        assert "RESULTS" in out
        assert "Scripted loss: packet:2" in out

    def test_bad_rule_reported(self, capsys):
        from main import main

        main(['--single', '--lose', 'frame:1'])

        assert "Error" in capsys.readouterr().out
