import asyncio
import contextlib
import json

import pytest

from flagproviders.core import ErrorCode, EvaluationContext, EvaluationError, EvaluationReason
from flagproviders.file_resolver import FileResolver


def _flag(variants, default, state="ENABLED", targeting=None):
    flag = {"state": state, "defaultVariant": default, "variants": variants}
    if targeting is not None:
        flag["targeting"] = targeting
    return flag


CONFIG = {
    "metadata": {"version": "1"},
    "flags": {
        "bool-flag": _flag({"on": True, "off": False}, "on"),
        "string-flag": _flag({"greeting": "hello", "farewell": "bye"}, "greeting"),
        "int-flag": _flag({"one": 1, "two": 2}, "two"),
        "float-flag": _flag({"pi": 3.14}, "pi"),
        "object-flag": _flag(
            {
                "obj": {
                    "name": "box",
                    "size": 3,
                    "ratio": 0.5,
                    "enabled": True,
                    "tags": ["a", "b"],
                    "nothing": None,
                }
            },
            "obj",
        ),
        "disabled-flag": _flag({"on": True}, "on", state="DISABLED"),
        "empty-targeting": _flag({"on": True, "off": False}, "off", targeting={}),
        "targeted-flag": _flag(
            {"on": True, "off": False},
            "off",
            targeting={"if": [{"==": [{"var": "email"}, "user@example.com"]}, "on", None]},
        ),
        "bad-targeting": _flag({"on": True}, "on", targeting={"unknown_op": [1]}),
        "dangling-variant": _flag({"on": True}, "missing"),
    },
}


def _write(path, config):
    staging = path.with_suffix(".tmp")
    staging.write_text(json.dumps(config), encoding="utf-8")
    staging.replace(path)


@contextlib.asynccontextmanager
async def _resolver(tmp_path, config=CONFIG):
    path = tmp_path / "flags.json"
    _write(path, config)
    resolver = await FileResolver.create(str(path))
    try:
        yield resolver
    finally:
        await resolver.close()


@pytest.mark.asyncio
async def test_resolves_boolean(tmp_path):
    async with _resolver(tmp_path) as resolver:
        details = await resolver.resolve_bool_value("bool-flag", EvaluationContext())
        assert details.value is True
        assert details.variant == "on"
        assert details.reason == EvaluationReason.TARGETING_MATCH
        assert details.flag_metadata is None
        assert resolver.metadata.name == "flagd"


@pytest.mark.asyncio
async def test_resolves_scalars(tmp_path):
    async with _resolver(tmp_path) as resolver:
        assert (await resolver.resolve_string_value("string-flag")).value == "hello"
        assert (await resolver.resolve_int_value("int-flag")).value == 2
        assert (await resolver.resolve_float_value("float-flag")).value == 3.14
        assert (await resolver.resolve_float_value("int-flag")).value == 2.0


@pytest.mark.asyncio
async def test_resolves_struct(tmp_path):
    async with _resolver(tmp_path) as resolver:
        details = await resolver.resolve_struct_value("object-flag")
        assert details.variant == "obj"
        assert details.value == {
            "name": "box",
            "size": 3,
            "ratio": 0.5,
            "enabled": True,
            "tags": '["a","b"]',
            "nothing": "null",
        }


@pytest.mark.asyncio
async def test_type_mismatch(tmp_path):
    async with _resolver(tmp_path) as resolver:
        with pytest.raises(EvaluationError) as info:
            await resolver.resolve_int_value("bool-flag")
        assert info.value.code == ErrorCode.TYPE_MISMATCH
        assert info.value.message == "Value for flag bool-flag is not a integer"
        with pytest.raises(EvaluationError) as info:
            await resolver.resolve_bool_value("dangling-variant")
        assert info.value.code == ErrorCode.TYPE_MISMATCH


@pytest.mark.asyncio
async def test_missing_and_disabled_flags(tmp_path):
    async with _resolver(tmp_path) as resolver:
        with pytest.raises(EvaluationError) as info:
            await resolver.resolve_bool_value("nope")
        assert info.value.code == ErrorCode.FLAG_NOT_FOUND
        assert info.value.message == "Flag nope not found"
        with pytest.raises(EvaluationError) as info:
            await resolver.resolve_bool_value("disabled-flag")
        assert info.value.code == ErrorCode.FLAG_NOT_FOUND
        assert info.value.message == "Flag disabled-flag is disabled"


@pytest.mark.asyncio
async def test_targeting(tmp_path):
    async with _resolver(tmp_path) as resolver:
        ctx = EvaluationContext(custom_fields={"email": "user@example.com"})
        matched = await resolver.resolve_bool_value("targeted-flag", ctx)
        assert (matched.value, matched.variant) == (True, "on")
        other = EvaluationContext(custom_fields={"email": "other@example.com"})
        fallback = await resolver.resolve_bool_value("targeted-flag", other)
        assert (fallback.value, fallback.variant) == (False, "off")
        empty = await resolver.resolve_bool_value("empty-targeting", ctx)
        assert empty.variant == "off"


@pytest.mark.asyncio
async def test_bad_targeting_is_general_error(tmp_path):
    async with _resolver(tmp_path) as resolver:
        with pytest.raises(EvaluationError) as info:
            await resolver.resolve_bool_value("bad-targeting")
        assert info.value.code == ErrorCode.GENERAL


@pytest.mark.asyncio
async def test_picks_up_file_changes(tmp_path):
    async with _resolver(tmp_path) as resolver:
        updated = json.loads(json.dumps(CONFIG))
        updated["flags"]["bool-flag"]["defaultVariant"] = "off"
        _write(tmp_path / "flags.json", updated)
        value = True
        for _ in range(40):
            value = (await resolver.resolve_bool_value("bool-flag")).value
            if value is False:
                break
            await asyncio.sleep(0.05)
        assert value is False


@pytest.mark.asyncio
async def test_missing_file_fails(tmp_path):
    with pytest.raises(FileNotFoundError):
        await FileResolver.create(str(tmp_path / "absent.json"))


@pytest.mark.asyncio
async def test_invalid_file_fails(tmp_path):
    path = tmp_path / "flags.json"
    path.write_text("not json", encoding="utf-8")
    with pytest.raises(ValueError):
        await FileResolver.create(str(path))