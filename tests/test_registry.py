import pytest
from dataclasses import dataclass
from hmrkit.core.registry import Registry


@dataclass
class FakeCompiler:
    name: str


def test_registry_registration():
    reg = Registry()
    compiler = FakeCompiler(name="react")
    reg.register(compiler)

    assert reg.get("react") is compiler
    assert "react" in reg


def test_registry_get_missing():
    reg = Registry()
    with pytest.raises(KeyError):
        reg.get("missing")


def test_registry_duplicate_error():
    reg = Registry()
    reg.register(FakeCompiler(name="dup"))

    with pytest.raises(ValueError, match="already registered"):
        reg.register(FakeCompiler(name="dup"))


def test_registry_len_iteration_and_names():
    reg = Registry()
    reg.register_all([FakeCompiler(name="react"), FakeCompiler(name="svelte")])

    assert len(reg) == 2
    assert {item.name for item in reg} == {"react", "svelte"}
    assert reg.names() == ["react", "svelte"]


def test_registry_replace_overwrites_existing_entry():
    reg = Registry()
    reg.register(FakeCompiler(name="vue"))
    replacement = FakeCompiler(name="vue")

    reg.replace(replacement)

    assert reg.get("vue") is replacement
    assert len(reg) == 1
