# flagproviders

Asynchronous feature flag providers that share one interface,
`flagproviders.core.FeatureProvider`. Every provider has the coroutines
`resolve_bool_value`, `resolve_int_value`, `resolve_float_value`,
`resolve_string_value` and `resolve_struct_value`, each taking a flag key
and an `EvaluationContext` and returning a `ResolutionDetails` (`value`,
`variant`, `reason`, `flag_metadata`). Failures are raised as
`EvaluationError`.

Providers included:

- **`flagproviders.flipt.FliptProvider`**: evaluates flags against a Flipt
  server's evaluation API.
- **`flagproviders.rest.RestResolver`**: evaluates flags against a flagd
  service using the OpenFeature Remote Evaluation Protocol (OFREP) over HTTP.
- **`flagproviders.file_resolver.FileResolver`**: evaluates flags in process
  from a flagd flag definition file, re-reading the file every 0.1 seconds
  and applying JSON Logic targeting rules.

Install with its test tools:

```
pip install .[test]
```

## Evaluation context

```python
from flagproviders.core import EvaluationContext

ctx = EvaluationContext(custom_fields={"plan": "pro"}).with_targeting_key("user-42")
```

`with_targeting_key` returns a copy with the targeting key set. Custom
field values may be strings, booleans, integers, floats, datetimes or
dictionaries.

## Flipt

```python
import asyncio

from flagproviders.core import EvaluationContext
from flagproviders.flipt import Config, FliptProvider, NoneAuthentication


async def main():
    config = Config(
        url="http://localhost:8080",
        authentication_strategy=NoneAuthentication(),
        timeout=60,
    )
    async with FliptProvider("default", config) as provider:
        ctx = EvaluationContext()
        enabled = await provider.resolve_bool_value("flag_boolean", ctx)
        print(enabled.value)

        limit = await provider.resolve_int_value("flag_integer", ctx)
        print(limit.value)


asyncio.run(main())
```

- Boolean flags use `POST /evaluate/v1/boolean` and return `enabled`.
- Integer, float and string flags use `POST /evaluate/v1/variant` and read
  the variant key; a key that is not a signed 64-bit integer (or not a
  float) raises `EvaluationError`.
- Structured flags parse the variant attachment as a JSON object; JSON
  `null` anywhere in it, or an attachment that is not an object, raises.
- The targeting key becomes the entity id (empty when there is none);
  only string-valued custom fields are sent as context.
- `ClientTokenAuthentication(token)` sends `Authorization: Bearer ...` and
  `JWTAuthentication(token)` sends `Authorization: JWT ...`.
- An invalid URL raises `ValueError` from the constructor. Close the
  provider with `aclose()` or use it as an async context manager.

## flagd over HTTP (OFREP)

```python
import asyncio

from flagproviders.core import EvaluationContext
from flagproviders.rest import RestResolver


async def main():
    resolver = RestResolver(host="localhost", port=8016, target_uri=None)
    ctx = EvaluationContext().with_targeting_key("user-42")
    details = await resolver.resolve_string_value("my-flag", ctx)
    print(details.value, details.variant, details.reason)


asyncio.run(main())
```

Requests go to `http://<host>:<port>/ofrep/v1/evaluate/flags/<key>`, or to
`http://<target_uri>/...` when `target_uri` is given. The reason is always
`EvaluationReason.STATIC`. A response whose `value` is missing or of the
wrong type (including error responses) raises `EvaluationError` with
`ErrorCode.PARSE_ERROR`; a failed connection raises it with
`ErrorCode.GENERAL`.

## flagd in process, from a file

```python
import asyncio

from flagproviders.core import EvaluationContext
from flagproviders.file_resolver import FileResolver


async def main():
    async with await FileResolver.create("flags.json") as resolver:
        ctx = EvaluationContext().with_targeting_key("user-42")
        details = await resolver.resolve_bool_value("new-checkout", ctx)
        print(details.value, details.variant)


asyncio.run(main())
```

A flag file looks like this:

```json
{
  "flags": {
    "new-checkout": {
      "state": "ENABLED",
      "defaultVariant": "off",
      "variants": {"on": true, "off": false},
      "targeting": {
        "fractional": [["on", 50], ["off", 50]]
      }
    }
  }
}
```

Resolution rules:

- An unknown flag, or one whose `state` is `DISABLED`, raises
  `EvaluationError` with `ErrorCode.FLAG_NOT_FOUND`.
- Without targeting the default variant is used. With targeting, the rule
  selects the variant; when it yields nothing (or evaluation fails) the
  default variant is used. Malformed rules and unknown operators raise.
- A variant whose value does not have the requested type raises with
  `ErrorCode.TYPE_MISMATCH`.
- The reason is `EvaluationReason.TARGETING_MATCH`.

Targeting data holds `targetingKey`, the custom fields, and
`$flagd.flagKey` / `$flagd.timestamp`. Besides the standard JSON Logic
operators (`flagproviders.targeting.json_logic` evaluates a rule directly),
two flagd operators are available:

- `fractional`: hashes a bucketing key with MurmurHash3 and picks a
  variant by weight. If the first argument is a string it is the key;
  otherwise the key is the flag key followed by the targeting key.
- `sem_ver`: `[version, op, version]` with `=`, `!=`, `<`, `<=`, `>`, `>=`,
  `^` (same major) or `~` (same major and minor).

Lower-level pieces are also usable on their own:
`flagproviders.model.parse_string` parses a flag document,
`flagproviders.store.FlagStore` keeps flags from a `Connector`, and
`flagproviders.connector.FileConnector` polls a file.

## Errors

All providers raise `flagproviders.core.EvaluationError`. It carries
`code` (an `ErrorCode`), an optional `message`, and an optional `detail`
describing a general error:

```python
from flagproviders.core import EvaluationError


async def read_limit(resolver, ctx):
    try:
        return (await resolver.resolve_int_value("missing", ctx)).value
    except EvaluationError as exc:
        print(exc.code, exc.message, exc.detail)
        return None
```

## What this package does not do

- There is no gRPC evaluation against flagd and no in-process sync from a
  flagd gRPC stream; in-process evaluation works from a local file only.
- Resolved values are not cached.
- There is no command-line tool and no server; this is a library.