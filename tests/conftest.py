import pytest

from cdcstreamer.config import StreamerConfig


@pytest.fixture()
def streamer_config():
    return StreamerConfig(
        kafka_connect_url='http://connect:8083',
        kafka_bootstrap_servers='broker:9092',
        kafka_internal_servers='kafka:29092',
        request_timeout=5.0,
        stream_poll_timeout=0.1,
        stream_cancel_grace=2.0,
        stream_keepalive_interval=0.1,
        fix_settle_seconds=0,
    )
