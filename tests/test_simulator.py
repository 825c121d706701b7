"""
Integration tests for the network simulator, topologies and batch runner.
"""

import csv

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from arqnet.arq.connection import SequenceBit
from arqnet.arq.frame import decode
from arqnet.arq.state_machine import AckPolicy
from arqnet.layers.application_layer import MessageSink, MessageSource
from arqnet.layers.physical_layer import Endpoint
from arqnet.utils.logger import SimulationLogger, LogLevel
from arqnet.utils.metrics import MetricsCollector
from simulation.runner import BatchRunner
from simulation.simulator import NetworkSimulator, SimulatorConfig
from simulation.topology import Topology


def quiet_logger():
    return SimulationLogger(name="test", level=LogLevel.CRITICAL, use_colors=False)


def simulate(topology, **kwargs):
    config = SimulatorConfig(**kwargs)
    return NetworkSimulator(topology, config, logger=quiet_logger())


def record_frames(sim):
    """Capture (sending node, decoded frame) for every link write."""
    sent = []
    transmit = sim.transmit

    def recording_transmit(node, link, data):
        sent.append((node, decode(data)))
        return transmit(node, link, data)

    sim.transmit = recording_transmit
    return sent


class TestTopology:
    """Tests for topology builders."""

    def test_line_link_numbering(self):
        topology = Topology.line(3)

        assert topology.nodes == [0, 1, 2]
        assert topology.neighbor(0, 1) == 1
        assert topology.neighbor(1, 1) == 0
        assert topology.neighbor(1, 2) == 2
        assert topology.neighbor(2, 1) == 1
        assert [info.link for info in topology.link_infos(1)] == [1, 2]

    def test_ring_link_numbering(self):
        topology = Topology.ring(5)

        assert topology.neighbor(0, 1) == 1
        assert topology.neighbor(0, 2) == 4
        for node in range(1, 5):
            assert topology.neighbor(node, 1) == node - 1
            assert topology.neighbor(node, 2) == (node + 1) % 5

    def test_minimum_sizes(self):
        with pytest.raises(ValueError):
            Topology.line(1)
        with pytest.raises(ValueError):
            Topology.ring(2)

    def test_invalid_connections(self):
        topology = Topology()
        topology.add_node(1)
        with pytest.raises(ValueError):
            topology.add_node(1)
        with pytest.raises(ValueError):
            topology.connect(1, 1)
        with pytest.raises(KeyError):
            topology.connect(1, 2)

    def test_build_links(self):
        links = Topology.ring(4).build_links()

        assert len(links) == 4
        assert links[0].a == Endpoint(0, 1)
        assert links[0].b == Endpoint(1, 1)


class TestApplication:
    """Tests for message sources and sinks."""

    def test_source_requires_enable(self):
        source = MessageSource(0)
        source.add_message(1, b"x")

        assert source.has_pending
        assert not source.ready
        source.enable()
        assert source.ready
        assert source.next_message() == (1, b"x")
        with pytest.raises(IndexError):
            source.next_message()

    def test_generated_messages_avoid_self(self):
        import numpy as np
        source = MessageSource.generate(2, [0, 1, 2, 3], 20, rng=np.random.default_rng(1))

        assert len(source.queue) == 20
        assert all(m.dest != 2 for m in source.queue)
        assert all(16 <= len(m.payload) <= 128 for m in source.queue)

    def test_sink_verification(self):
        source = MessageSource(0)
        source.add_message(1, b"a")
        source.add_message(1, b"b")
        source.enable()
        source.next_message()
        source.next_message()

        sink = MessageSink()
        sink.record(0.1, 0, 1, b"a")
        sink.record(0.2, 0, 1, b"b")
        valid, details = sink.verify([source])
        assert valid
        assert details['expected_checksum'] == details['received_checksum']

        sink.record(0.3, 0, 1, b"b")
        valid, details = sink.verify([source])
        assert not valid
        assert details['mismatched_pairs'] == [(0, 1)]


class TestMetrics:
    """Tests for the metrics collector."""

    def test_latency_and_goodput(self):
        metrics = MetricsCollector()
        metrics.start(0.0)
        metrics.record_message_submitted(1.0, 0, 1, 100)
        metrics.record_message_delivered(1.5, 0, 1, 100)
        metrics.record_frame_transmitted('DATA', 120)
        metrics.record_frame_transmitted('ACK', 20)
        metrics.finish(2.0)

        summary = metrics.get_summary()
        assert summary['goodput'] == pytest.approx(50.0)
        assert summary['efficiency'] == pytest.approx(100 / 140)
        assert summary['delivery_ratio'] == 1.0
        assert summary['latency']['mean'] == pytest.approx(0.5)
        assert summary['data_frames_transmitted'] == 1
        assert summary['ack_frames_transmitted'] == 1

    def test_csv_row_is_flat(self):
        row = MetricsCollector().to_csv_row()

        assert 'latency_mean' in row
        assert not any(isinstance(value, dict) for value in row.values())


class TestNetworkSimulator:
    """End-to-end simulation runs."""

    def test_line_delivery_through_relay(self):
        sim = simulate(Topology.line(3), message_count=0)
        sim.sources[0].add_message(2, b"hello")
        sent = record_frames(sim)

        results = sim.run()

        assert results['complete']
        assert results['verification']['valid']
        assert [d.payload for d in sim.sink.delivered_to(2)] == [b"hello"]
        assert sim.nodes[1].forwarder.frames_relayed == 2

        data = [frame for node, frame in sent if node == 0 and frame.is_data]
        assert [frame.seq for frame in data] == [0]
        relayed = [frame for node, frame in sent if node == 1 and frame.is_data]
        assert relayed[0].dest == 2
        assert relayed[0].hop_count == 1
        acks = [frame for node, frame in sent if node == 2 and frame.is_ack]
        assert [ack.ack for ack in acks] == [0]
        assert acks[0].dest == 0

        sender = sim.nodes[0].arq
        assert sender.connections.find(2).next_seq == SequenceBit.ONE
        assert sender.can_send()
        assert sim.sources[0].enabled

    def test_ten_node_line_completes(self):
        sim = simulate(Topology.line(10), message_count=0, max_time=30)
        sim.sources[0].add_message(9, b"hello")

        results = sim.run()

        assert results['complete']
        assert results['verification']['valid']
        assert [d.payload for d in sim.sink.delivered_to(9)] == [b"hello"]
        assert sum(s['hop_limit_drops'] for s in results['nodes'].values()) == 0

    def test_echo_on_large_ring(self):
        sim = simulate(Topology.ring(20), message_count=8, senders=[0],
                       echo_discovery=True)
        sim.run()

        assert sim.nodes[0].discovery.echo is not None
        assert sim.nodes[0].discovery.echo.ring_length == 20

    def test_ring_converges_to_shorter_side(self):
        sim = simulate(Topology.ring(10), message_count=0)
        for text in (b"first", b"second", b"third"):
            sim.sources[0].add_message(4, text)

        results = sim.run()

        assert results['complete']
        assert results['verification']['valid']
        assert results['paths'][0] == {4: 1}
        stats = sim.nodes[0].get_statistics()
        assert stats['frames_transmitted'] == 4
        assert stats['retransmissions'] == 0

    def test_lossy_ring_recovers(self):
        sim = simulate(Topology.ring(5), message_count=5, loss_probability=0.2, seed=7)
        results = sim.run()

        assert results['complete']
        assert results['verification']['valid']
        assert results['metrics']['frames_lost'] > 0
        assert results['metrics']['retransmissions'] > 0

    def test_burst_errors(self):
        sim = simulate(Topology.ring(4), message_count=5, burst_errors=True,
                       good_state_ber=1e-4, bad_state_ber=5e-3, seed=11)
        results = sim.run()

        assert results['complete']
        assert results['verification']['valid']

    def test_accept_any_policy_without_loss(self):
        sim = simulate(Topology.line(4), message_count=3,
                       ack_policy=AckPolicy.ACCEPT_ANY)
        results = sim.run()

        assert results['complete']
        assert results['verification']['valid']
        assert results['config']['ack_policy'] == 'ACCEPT_ANY'

    def test_echo_discovery(self):
        sim = simulate(Topology.ring(6), message_count=4, senders=[0],
                       echo_discovery=True)
        results = sim.run()

        assert results['complete']
        echo = sim.nodes[0].discovery.echo
        assert echo is not None
        assert echo.ring_length == 6
        assert sim.nodes[0].discovery.echo_attempts == 1

    def test_describe_state(self):
        sim = simulate(Topology.ring(3), message_count=1)
        sim.run()
        text = sim.describe_state()

        for address in range(3):
            assert f"=== Node {address} ===" in text

    def test_reproducible(self):
        first = simulate(Topology.ring(4), message_count=3, loss_probability=0.1, seed=5).run()
        second = simulate(Topology.ring(4), message_count=3, loss_probability=0.1, seed=5).run()

        assert first['metrics']['frames_transmitted'] == second['metrics']['frames_transmitted']
        assert first['simulation_time'] == second['simulation_time']


class TestBatchRunner:
    """Tests for the parameter sweep runner."""

    def test_small_sweep(self, tmp_path):
        output = tmp_path / "results.csv"
        runner = BatchRunner(ring_sizes=[3, 4], loss_probabilities=[0.0],
                             runs_per_config=1, message_count=2,
                             output_file=str(output))

        results = runner.run_sequential(show_progress=False)
        runner.save_results()

        assert len(results) == 2
        assert all(r['error'] is None for r in results)
        assert all(r['data_valid'] for r in results)
        with open(output) as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 2

        aggregated = runner.get_aggregated_results()
        assert set(aggregated) == {(3, 0.0), (4, 0.0)}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
