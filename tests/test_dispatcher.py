import logging

from nut_prom_exporter.catalog import get_family
from nut_prom_exporter.dispatcher import LABEL_MAX_LENGTH, Dispatcher, Sample
from nut_prom_exporter.registry import Target


def _target(name: str = "ups1", host: str = "monitor.example") -> Target:
    return Target(name=name, host=host, port=3493, connection=None)


def test_submit_builds_sample_and_hands_it_to_sink() -> None:
    emitted: list[tuple[str, Sample]] = []
    dispatcher = Dispatcher(
        lambda name, sample: emitted.append((name, sample)),
        hostname="poller",
        clock=lambda: 1700000000.0,
    )

    dispatcher.submit(_target(), get_family("percent"), "charge", 87.0)

    assert emitted == [
        (
            "percent",
            Sample(
                timestamp=1700000000.0,
                host="monitor.example",
                plugin_instance="ups1",
                type="percent",
                type_instance="charge",
                value=87.0,
            ),
        )
    ]
    assert emitted[0][1].plugin == "nut"


def test_localhost_is_replaced_with_system_hostname() -> None:
    emitted: list[Sample] = []
    dispatcher = Dispatcher(lambda name, sample: emitted.append(sample), hostname="rack-01")

    dispatcher.submit(_target(host="localhost"), get_family("voltage"), "battery", 13.4)
    dispatcher.submit(_target(host="LocalHost"), get_family("voltage"), "input", 230.0)
    dispatcher.submit(_target(host="localhost.example"), get_family("voltage"), "output", 229.0)

    assert [sample.host for sample in emitted] == ["rack-01", "rack-01", "localhost.example"]


def test_hostname_defaults_to_system_hostname(monkeypatch) -> None:
    monkeypatch.setattr("nut_prom_exporter.dispatcher.socket.gethostname", lambda: "from-os")
    dispatcher = Dispatcher(lambda name, sample: None)
    assert dispatcher.hostname == "from-os"
    assert dispatcher.host_label(_target(host="localhost")) == "from-os"


def test_long_labels_are_truncated() -> None:
    emitted: list[Sample] = []
    dispatcher = Dispatcher(lambda name, sample: emitted.append(sample), hostname="poller")

    dispatcher.submit(_target(name="u" * 100, host="h" * 100), get_family("current"), "i" * 100, 1.0)

    sample = emitted[0]
    assert sample.host == "h" * LABEL_MAX_LENGTH
    assert sample.plugin_instance == "u" * LABEL_MAX_LENGTH
    assert sample.type_instance == "i" * LABEL_MAX_LENGTH


def test_sink_errors_do_not_escape_submit(caplog) -> None:
    def sink(name: str, sample: Sample) -> None:
        raise RuntimeError("sink is full")

    dispatcher = Dispatcher(sink, hostname="poller")
    with caplog.at_level(logging.WARNING):
        dispatcher.submit(_target(), get_family("power"), "ups", 450.0)

    assert "sink is full" in caplog.text
