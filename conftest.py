import logging
import random

import pytest

# 激活本地插件
pytest_plugins = [
    "common.plugins.checkout_plugin",
]


def pytest_addoption(parser):
    parser.addoption("--env", action="store", default="development", help="运行环境")


@pytest.fixture(scope="session")
def env(pytestconfig):
    return pytestconfig.getoption("--env")


@pytest.fixture(scope="function")
def set_coupon(monkeypatch):
    monkeypatch.setenv("COUPON_CODE", "SAVE5")
    yield
    monkeypatch.delenv("COUPON_CODE", raising=False)


@pytest.fixture(scope="function")
def log_capture(caplog):
    caplog.set_level(logging.DEBUG, logger="pos_checkout")
    return caplog


def _split_cases():
    rng = random.Random(20241019)
    cases = [(0, 1), (0, 7), (1, 3), (999, 1000), (1000, 3), (1001, 2), (99, 50)]
    cases += [(rng.randint(0, 100000), rng.randint(1, 50)) for _ in range(25)]
    return cases


def pytest_generate_tests(metafunc):
    # 动态生成分账参数：(金额, 份数)
    if "split_case" in metafunc.fixturenames:
        cases = _split_cases()
        metafunc.parametrize("split_case", cases, ids=[f"{a}/{p}" for a, p in cases])
    if "payer_count" in metafunc.fixturenames:
        metafunc.parametrize("payer_count", [2, 3, 5], ids=["two", "three", "five"])


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    # 每个用例使用独立的配置目录，并屏蔽外部环境变量
    for var in ("POS_ENV", "POS_CONFIG_DIR", "POS_MAX_QUANTITY", "POS_MAX_PAYERS", "POS_MIN_PAYERS", "POS_CURRENCY"):
        monkeypatch.delenv(var, raising=False)
    d = tmp_path / "configs"
    d.mkdir()
    yield d
