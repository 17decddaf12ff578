import json

import httpx
import pytest
import respx

from flagproviders.core import ErrorCode, EvaluationContext, EvaluationError, EvaluationReason
from flagproviders.rest import RestResolver

HOST = "127.0.0.1"
PORT = 8016
FLAG_URL = f"http://{HOST}:{PORT}/ofrep/v1/evaluate/flags/test-flag"


def make_resolver() -> RestResolver:
    return RestResolver(host=HOST, port=PORT)


def user_context() -> EvaluationContext:
    return EvaluationContext().with_targeting_key("test-user")


def test_endpoint_from_host_and_port():
    assert make_resolver().endpoint == "http://127.0.0.1:8016"


def test_endpoint_from_target_uri():
    resolver = RestResolver(host=HOST, port=PORT, target_uri="flagd.local:9000")
    assert resolver.endpoint == "http://flagd.local:9000"


def test_metadata_name():
    assert make_resolver().metadata.name == "flagd-rest-provider"


@pytest.mark.asyncio
async def test_resolve_bool_value():
    with respx.mock:
        route = respx.post(FLAG_URL).mock(
            return_value=httpx.Response(
                200, json={"value": True, "variant": "on", "reason": "STATIC"}
            )
        )
        result = await make_resolver().resolve_bool_value("test-flag", user_context())
    assert result.value is True
    assert result.variant == "on"
    assert result.reason == EvaluationReason.STATIC
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_request_body_carries_context():
    with respx.mock:
        route = respx.post(FLAG_URL).mock(
            return_value=httpx.Response(200, json={"value": True, "variant": "on"})
        )
        ctx = EvaluationContext(
            targeting_key="test-user", custom_fields={"plan": "pro", "seats": 3}
        )
        result = await make_resolver().resolve_bool_value("test-flag", ctx)
        body = json.loads(route.calls.last.request.content)
    assert result.value is True
    assert result.variant == "on"
    assert body == {"context": {"targetingKey": "test-user", "plan": "pro", "seats": 3}}


@pytest.mark.asyncio
async def test_resolve_string_value():
    with respx.mock:
        respx.post(FLAG_URL).mock(
            return_value=httpx.Response(
                200, json={"value": "test-value", "variant": "key1", "reason": "STATIC"}
            )
        )
        result = await make_resolver().resolve_string_value("test-flag", user_context())
    assert result.value == "test-value"
    assert result.variant == "key1"
    assert result.reason == EvaluationReason.STATIC


@pytest.mark.asyncio
async def test_resolve_float_value():
    with respx.mock:
        respx.post(FLAG_URL).mock(
            return_value=httpx.Response(
                200, json={"value": 1.23, "variant": "one", "reason": "STATIC"}
            )
        )
        result = await make_resolver().resolve_float_value("test-flag", user_context())
    assert result.value == 1.23
    assert result.variant == "one"
    assert result.reason == EvaluationReason.STATIC


@pytest.mark.asyncio
async def test_resolve_float_accepts_integer():
    with respx.mock:
        respx.post(FLAG_URL).mock(
            return_value=httpx.Response(200, json={"value": 42, "variant": "one"})
        )
        result = await make_resolver().resolve_float_value("test-flag", user_context())
    assert result.value == 42.0
    assert isinstance(result.value, float)


@pytest.mark.asyncio
async def test_resolve_int_value():
    with respx.mock:
        respx.post(FLAG_URL).mock(
            return_value=httpx.Response(
                200, json={"value": 42, "variant": "one", "reason": "STATIC"}
            )
        )
        result = await make_resolver().resolve_int_value("test-flag", user_context())
    assert result.value == 42
    assert result.variant == "one"
    assert result.reason == EvaluationReason.STATIC


@pytest.mark.asyncio
async def test_resolve_int_rejects_float():
    with respx.mock:
        respx.post(FLAG_URL).mock(
            return_value=httpx.Response(200, json={"value": 4.5, "variant": "one"})
        )
        with pytest.raises(EvaluationError) as info:
            await make_resolver().resolve_int_value("test-flag", user_context())
    assert info.value.code == ErrorCode.PARSE_ERROR
    assert info.value.message == "Invalid integer value"


@pytest.mark.asyncio
async def test_resolve_struct_value():
    with respx.mock:
        respx.post(FLAG_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "value": {
                        "key": "val",
                        "number": 42,
                        "boolean": True,
                        "nested": {"inner": "value"},
                    },
                    "variant": "object1",
                    "reason": "STATIC",
                },
            )
        )
        result = await make_resolver().resolve_struct_value("test-flag", user_context())
    value = result.value
    assert value["key"] == "val"
    assert value["number"] == 42
    assert value["boolean"] is True
    assert value["nested"]["inner"] == "value"
    assert result.variant == "object1"
    assert result.reason == EvaluationReason.STATIC


@pytest.mark.asyncio
async def test_missing_variant_gives_none():
    with respx.mock:
        respx.post(FLAG_URL).mock(return_value=httpx.Response(200, json={"value": "x"}))
        result = await make_resolver().resolve_string_value("test-flag", user_context())
    assert result.value == "x"
    assert result.variant is None


@pytest.mark.asyncio
async def test_error_handling():
    with respx.mock:
        respx.post(FLAG_URL).mock(
            return_value=httpx.Response(
                404, json={"errorCode": "FLAG_NOT_FOUND", "errorDetails": "Flag not found"}
            )
        )
        with pytest.raises(EvaluationError) as info:
            await make_resolver().resolve_bool_value("test-flag", EvaluationContext())
    assert info.value.code == ErrorCode.PARSE_ERROR
    assert info.value.message == "Invalid boolean value"


@pytest.mark.asyncio
async def test_invalid_json_is_parse_error():
    with respx.mock:
        respx.post(FLAG_URL).mock(return_value=httpx.Response(200, content=b"not json"))
        with pytest.raises(EvaluationError) as info:
            await make_resolver().resolve_string_value("test-flag", user_context())
    assert info.value.code == ErrorCode.PARSE_ERROR


@pytest.mark.asyncio
async def test_struct_rejects_scalar():
    with respx.mock:
        respx.post(FLAG_URL).mock(return_value=httpx.Response(200, json={"value": 7}))
        with pytest.raises(EvaluationError) as info:
            await make_resolver().resolve_struct_value("test-flag", user_context())
    assert info.value.code == ErrorCode.PARSE_ERROR
    assert info.value.message == "Invalid struct value"


@pytest.mark.asyncio
async def test_connection_failure_is_general_error():
    with respx.mock:
        respx.post(FLAG_URL).mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(EvaluationError) as info:
            await make_resolver().resolve_bool_value("test-flag", user_context())
    assert info.value.code == ErrorCode.GENERAL
    assert info.value.detail == "Failed to resolve boolean value"


@pytest.mark.asyncio
async def test_target_uri_is_used_for_requests():
    with respx.mock:
        route = respx.post("http://flagd.local:9000/ofrep/v1/evaluate/flags/test-flag").mock(
            return_value=httpx.Response(200, json={"value": False, "variant": "off"})
        )
        resolver = RestResolver(host=HOST, port=PORT, target_uri="flagd.local:9000")
        result = await resolver.resolve_bool_value("test-flag", user_context())
    assert result.value is False
    assert route.call_count == 1