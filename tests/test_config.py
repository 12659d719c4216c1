import pytest

from sentryrelay.config import Config, QueueConfig, RetryConfig, TransportConfig


def test_init_defaults_fills_zero_values():
    cfg = Config()
    cfg.init_defaults()
    assert cfg.transport.timeout == 30.0
    assert cfg.transport.connect_timeout == 10.0
    assert cfg.transport.compression is True
    assert cfg.transport.ssl_verify is True
    assert cfg.retry.max_attempts == 3
    assert cfg.retry.initial_backoff == 1.0
    assert cfg.retry.backoff_multiplier == 2.0
    assert cfg.retry.max_backoff == 300.0
    assert cfg.queue.buffer_size == 1000
    assert cfg.queue.workers == 1
    assert cfg.queue.batch_size == 10
    assert cfg.queue.batch_timeout == 5.0


def test_init_defaults_keeps_explicit_values():
    cfg = Config(
        transport=TransportConfig(timeout=7.0, connect_timeout=2.0),
        retry=RetryConfig(max_attempts=9, backoff_multiplier=1.5),
        queue=QueueConfig(buffer_size=50, workers=4, batch_size=3, batch_timeout=0.25),
    )
    cfg.init_defaults()
    assert cfg.transport.timeout == 7.0
    assert cfg.transport.connect_timeout == 2.0
    assert cfg.retry.max_attempts == 9
    assert cfg.retry.backoff_multiplier == 1.5
    assert cfg.queue.buffer_size == 50
    assert cfg.queue.workers == 4
    assert cfg.queue.batch_size == 3
    assert cfg.queue.batch_timeout == 0.25


def test_init_defaults_turns_disabled_flags_on():
    cfg = Config.from_mapping({"transport": {"compression": False, "ssl_verify": False}})
    cfg.init_defaults()
    assert cfg.transport.compression is True
    assert cfg.transport.ssl_verify is True


def test_from_mapping_reads_nested_sections():
    cfg = Config.from_mapping(
        {
            "dsn": "https://public@example.com/1",
            "transport": {"timeout": 12, "proxy": "http://localhost:3128"},
            "retry": {"max_attempts": 5, "dead_letter_queue": True, "backoff_multiplier": 3},
            "queue": {"buffer_size": 64, "workers": 2},
        }
    )
    assert cfg.dsn == "https://public@example.com/1"
    assert cfg.transport.timeout == 12.0
    assert cfg.transport.proxy == "http://localhost:3128"
    assert cfg.retry.max_attempts == 5
    assert cfg.retry.dead_letter_queue is True
    assert cfg.retry.backoff_multiplier == 3.0
    assert cfg.queue.buffer_size == 64
    assert cfg.queue.workers == 2


def test_from_mapping_empty_gives_zero_config():
    assert Config.from_mapping({}) == Config()
    assert Config.from_mapping(None) == Config()


@pytest.mark.parametrize(
    "text, seconds",
    [("30s", 30.0), ("1m30s", 90.0), ("500ms", 0.5), ("0", 0.0)],
)
def test_from_mapping_parses_duration_strings(text, seconds):
    cfg = Config.from_mapping({"queue": {"batch_timeout": text}})
    assert cfg.queue.batch_timeout == pytest.approx(seconds)


@pytest.mark.parametrize(
    "data",
    [
        {"queue": {"batch_timeout": "soon"}},
        {"queue": {"batch_timeout": "5"}},
        {"queue": {"workers": "many"}},
        {"queue": {"workers": True}},
        {"transport": {"compression": "maybe"}},
        {"transport": "fast"},
        {"dsn": 42},
    ],
)
def test_from_mapping_rejects_bad_values(data):
    with pytest.raises(ValueError):
        Config.from_mapping(data)


def test_validate_corrects_values_when_dsn_set():
    cfg = Config(
        dsn="https://public@example.com/1",
        retry=RetryConfig(max_attempts=-4),
        queue=QueueConfig(buffer_size=-1, workers=0),
    )
    cfg.validate()
    assert cfg.queue.buffer_size == 1000
    assert cfg.queue.workers == 1
    assert cfg.retry.max_attempts == 0


def test_validate_leaves_config_alone_without_dsn():
    cfg = Config(retry=RetryConfig(max_attempts=-4), queue=QueueConfig(buffer_size=-1))
    cfg.validate()
    assert cfg.retry.max_attempts == -4
    assert cfg.queue.buffer_size == -1