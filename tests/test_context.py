"""Tests for the variable context."""

import threading

import pytest

from shellkit.core.context import Context, get_context, reset_context


class TestContextVariables:
    """Test basic variable operations."""

    def test_set_get(self):
        """Test setting and reading a variable."""
        context = Context()
        context.set("NAME", "world")
        assert context.get("NAME") == "world"
        assert context.has("NAME")

    def test_missing_is_empty(self):
        """Test a missing variable reads as the empty string."""
        context = Context()
        assert context.get("MISSING") == ""
        assert not context.has("MISSING")

    def test_set_replaces(self):
        """Test set overwrites previous values."""
        context = Context({"A": "1"})
        context.set("A", "2")
        assert context.get("A") == "2"
        assert len(context) == 1

    def test_values_become_strings(self):
        """Test non-string values are stored as strings."""
        context = Context({"N": 3})
        context.set("M", 4)
        assert context.get("N") == "3"
        assert context.get("M") == "4"

    def test_unset(self):
        """Test unset removes a variable and ignores unknown names."""
        context = Context({"A": "1"})
        context.unset("A")
        context.unset("NEVER_SET")
        assert not context.has("A")

    def test_snapshot_is_detached(self):
        """Test snapshots do not follow later writes."""
        context = Context({"A": "1"})
        snap = context.snapshot()
        context.set("A", "2")
        snap["B"] = "x"
        assert snap["A"] == "1"
        assert not context.has("B")

    def test_expand(self):
        """Test expansion against the context."""
        context = Context({"NAME": "world"})
        assert context.expand("hello ${NAME}, hello $NAME") == "hello world, hello world"

    def test_param_default(self):
        """Test param falls back when the value is empty."""
        context = Context({"EMPTY": ""})
        assert context.param("EMPTY", "fallback") == "fallback"
        assert context.param("MISSING") == ""

    def test_empty_context_is_usable(self):
        """Test an empty context behaves as a real context."""
        context = Context()
        assert len(context) == 0
        assert repr(context) == "Context(0 variables)"

    def test_concurrent_writes(self):
        """Test writes from many threads are all kept."""
        context = Context()

        def writer(n):
            for i in range(100):
                context.set(f"T{n}_{i}", str(i))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(context) == 800


class TestContextArrays:
    """Test the KEY / KEY_LENGTH / KEY_i array convention."""

    def test_set_array(self):
        """Test set_array writes every entry."""
        context = Context()
        context.set_array("FILES", ["a.txt", "b.txt"])
        assert context.get("FILES") == "a.txt b.txt"
        assert context.get("FILES_LENGTH") == "2"
        assert context.get("FILES_0") == "a.txt"
        assert context.get("FILES_1") == "b.txt"
        assert context.get_array("FILES") == ["a.txt", "b.txt"]

    def test_elements_with_spaces(self):
        """Test indexed entries keep elements containing spaces."""
        context = Context()
        context.set_array("ITEMS", ["one two", "three"])
        assert context.get_array("ITEMS") == ["one two", "three"]

    def test_plain_value_splits(self):
        """Test a plain variable reads as a whitespace-split array."""
        context = Context({"LIST": "a  b c"})
        assert context.get_array("LIST") == ["a", "b", "c"]
        assert context.get_array("MISSING") == []

    def test_missing_index_skipped(self):
        """Test missing indexed entries are skipped."""
        context = Context()
        context.set_array("A", ["x", "y", "z"])
        context.unset("A_1")
        assert context.get_array("A") == ["x", "z"]

    def test_push_array(self):
        """Test appending to an array."""
        context = Context()
        context.push_array("A", "x")
        context.push_array("A", "y")
        assert context.get_array("A") == ["x", "y"]
        assert context.get("A_LENGTH") == "2"


class TestCallFrames:
    """Test the function registry and call stack."""

    def test_push_pop(self):
        """Test frames are popped in reverse order."""
        context = Context({"A": "1"})
        outer = context.push_call("outer", ["x"])
        inner = context.push_call("inner")
        assert [f.function for f in context.call_stack()] == ["outer", "inner"]
        assert outer.args == ("x",)
        assert context.pop_call() is inner
        assert context.pop_call() is outer
        assert context.pop_call() is None

    def test_frame_snapshot(self):
        """Test frames keep the variables at push time."""
        context = Context({"A": "1"})
        frame = context.push_call("f")
        context.set("A", "2")
        assert frame.snapshot["A"] == "1"
        with pytest.raises(TypeError):
            frame.snapshot["A"] = "3"

    def test_elapsed(self):
        """Test elapsed time is non-negative."""
        frame = Context().push_call("f")
        assert frame.elapsed_ms() >= 0

    def test_functions_sorted(self):
        """Test registered functions are listed by name."""
        context = Context()
        context.register_function("zeta", "last")
        context.register_function("alpha", "first")
        assert context.list_functions() == [("alpha", "first"), ("zeta", "last")]


class TestBootstrap:
    """Test context bootstrap from argv and the environment."""

    def test_environment_loaded(self):
        """Test environment variables are copied in."""
        context = Context()
        context.bootstrap(["/opt/tools/deploy.py"], environ={"HOME": "/home/u", "FOO": "bar"})
        assert context.get("FOO") == "bar"
        assert context.get("SCRIPT_NAME") == "deploy.py"
        assert context.get("SCRIPT_PATH") == "/opt/tools/deploy.py"
        assert context.get("SCRIPT_DIR") == "/opt/tools"

    def test_xdg_defaults(self):
        """Test XDG directories default under HOME."""
        context = Context()
        context.bootstrap(["prog"], environ={"HOME": "/home/u", "XDG_CACHE_HOME": "/tmp/cache"})
        assert context.get("XDG_CONFIG_HOME") == "/home/u/.config"
        assert context.get("XDG_DATA_HOME") == "/home/u/.local/share"
        assert context.get("XDG_CACHE_HOME") == "/tmp/cache"

    def test_mode_flags(self):
        """Test DEBUG and friends set *_MODE flags."""
        context = Context()
        context.bootstrap(["prog"], environ={"HOME": "/h", "DEBUG": "1"})
        assert context.get("DEBUG_MODE") == "true"
        assert not context.has("QUIET_MODE")


class TestDefaultContext:
    """Test the process-wide default context."""

    def test_reset(self):
        """Test reset_context replaces the default."""
        get_context().set("LEFTOVER", "1")
        fresh = reset_context()
        assert get_context() is fresh
        assert not fresh.has("LEFTOVER")
