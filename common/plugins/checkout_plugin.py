import time
from pathlib import Path

import pytest

from pos_checkout.catalog import load_catalog
from pos_checkout.config import Settings
from pos_checkout.service import CheckoutSession

LAYER_ORDER = {"unit": 0, "contract": 1, "integration": 2, "e2e": 3}


def pytest_addoption(parser):
    group = parser.getgroup("checkout", "结算核心测试选项")
    group.addoption(
        "--catalog",
        action="store",
        default="configs/catalog.yaml",
        help="测试使用的商品目录 YAML",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: 单元测试")
    config.addinivalue_line("markers", "contract: 数据结构契约测试")
    config.addinivalue_line("markers", "integration: 集成测试")
    config.addinivalue_line("markers", "e2e: 端到端测试")
    config.addinivalue_line("markers", "slow: 慢测试，生产环境跳过")


def pytest_collection_modifyitems(config, items):
    """生产环境跳过慢测试，并按 unit -> contract -> integration -> e2e 排序"""
    if config.getoption("--env") == "production":
        for item in items:
            if item.get_closest_marker("slow"):
                item.add_marker(pytest.mark.skip(reason="生产环境跳过慢测试"))

    def item_priority(item):
        for name, rank in LAYER_ORDER.items():
            if item.get_closest_marker(name):
                return rank
        return len(LAYER_ORDER)

    items.sort(key=item_priority)


def pytest_sessionstart(session):
    session.config._checkout_started = time.time()


def pytest_terminal_summary(terminalreporter, exitstatus):
    stats = terminalreporter.stats
    passed = len(stats.get("passed", []))
    failed = len(stats.get("failed", []))
    skipped = len(stats.get("skipped", []))
    duration = time.time() - getattr(terminalreporter.config, "_checkout_started", time.time())
    terminalreporter.write_sep("=", "结算核心: 用例统计")
    terminalreporter.write_line(f"通过: {passed}  失败: {failed}  跳过: {skipped}  耗时: {duration:.2f}秒")


@pytest.fixture(scope="session")
def catalog(pytestconfig):
    path = Path(pytestconfig.getoption("--catalog"))
    if not path.is_absolute():
        path = pytestconfig.rootpath / path
    return load_catalog(str(path))


@pytest.fixture
def settings():
    # 默认配置：无促销、无优惠码，金额断言不受 configs/ 影响
    return Settings()


@pytest.fixture
def session(settings, catalog):
    return CheckoutSession(settings=settings, catalog=catalog)
