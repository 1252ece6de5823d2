import pytest

from toolgate.tools.base import ToolCapability, ToolClassification, ToolContext, ToolInput, ToolOutput, define_tool
from toolgate.tools.registry import ToolRegistry, filter_tools, is_visible


class NoInput(ToolInput):
    pass


def _tool(name: str, capability: ToolCapability):
    @define_tool(
        name=name,
        title=name,
        description=f"{name} test tool",
        capability=capability,
        input_model=NoInput,
        classification=ToolClassification.READ_ONLY,
    )
    async def executor(ctx: ToolContext, params: NoInput) -> ToolOutput:
        return None

    return executor


@pytest.fixture
def catalogue() -> ToolRegistry:
    return ToolRegistry(
        [
            _tool("core_tool", ToolCapability.CORE),
            _tool("tab_tool", ToolCapability.TABS),
            _tool("pdf_tool", ToolCapability.PDF),
        ]
    )


def test_duplicate_names_are_rejected():
    with pytest.raises(ValueError, match="Duplicate tool name: core_tool"):
        ToolRegistry([_tool("core_tool", ToolCapability.CORE), _tool("core_tool", ToolCapability.TABS)])


def test_registry_keeps_registration_order(catalogue: ToolRegistry):
    assert [tool.name for tool in catalogue.list()] == ["core_tool", "tab_tool", "pdf_tool"]
    assert [tool.name for tool in catalogue] == ["core_tool", "tab_tool", "pdf_tool"]
    assert len(catalogue) == 3


def test_resolve(catalogue: ToolRegistry):
    tool = catalogue.resolve("tab_tool")
    assert tool is not None
    assert tool.capability is ToolCapability.TABS
    assert catalogue.resolve("missing") is None
    assert "pdf_tool" in catalogue
    assert "missing" not in catalogue


def test_no_restriction_shows_everything(catalogue: ToolRegistry):
    assert filter_tools(catalogue, None) == catalogue.list()


def test_empty_grant_leaves_only_core_tools(catalogue: ToolRegistry):
    visible = filter_tools(catalogue, [])
    assert [tool.name for tool in visible] == ["core_tool"]


def test_granted_capabilities_add_to_core(catalogue: ToolRegistry):
    visible = filter_tools(catalogue, {ToolCapability.TABS})
    assert [tool.name for tool in visible] == ["core_tool", "tab_tool"]


def test_core_tools_are_always_visible():
    tool = _tool("core_tool", ToolCapability.CORE)
    assert is_visible(tool, [])
    assert is_visible(tool, [ToolCapability.PDF])
    assert is_visible(tool, None)


def test_filter_is_a_subset_of_the_catalogue(catalogue: ToolRegistry):
    for granted in (None, [], [ToolCapability.PDF], list(ToolCapability)):
        visible = filter_tools(catalogue, granted)
        assert set(visible) <= set(catalogue.list())
