import pytest

import twofa

RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"  # b"12345678901234567890"
DEMO_SECRET = "JBSWY3DPEHPK3PXP"


@pytest.fixture(autouse=True)
def restore_logger():
    handlers = list(twofa.logger.handlers)
    level = twofa.logger.level
    yield
    twofa.logger.handlers[:] = handlers
    twofa.logger.setLevel(level)


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    directory = tmp_path / "config"
    monkeypatch.setenv("TWOFA_CONFIG_DIR", str(directory))
    monkeypatch.delenv("TWOFA_DEBUG", raising=False)
    return directory


@pytest.fixture
def secrets_path(config_dir):
    return config_dir / twofa.SECRETS_FILE


@pytest.fixture
def frozen_time(monkeypatch):
    def _freeze(now):
        monkeypatch.setattr(twofa.time, "time", lambda: now)
        return now

    return _freeze
