from toolgate.utilities.logging import get_logger


def test_loggers_live_under_the_package_namespace():
    assert get_logger("toolgate.cli").name == "toolgate.cli"
    assert get_logger("toolgate").name == "toolgate"
    assert get_logger("plugins.acme").name == "toolgate.plugins.acme"
