"""
Read credentials written by Baileys.

The session manager hands out Baileys multi-file auth folders, whose
`creds.json` uses camelCase keys and stores `account` as a JSON object.
pyaileys expects snake_case keys and `account` as serialized protobuf bytes.
Buffers already share the `{"type": "Buffer", "data": ...}` encoding.
"""

from __future__ import annotations

import re
from typing import Any

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")

# Keys that only appear in a Baileys-written creds.json.
_BAILEYS_MARKERS = ("noiseKey", "signedIdentityKey", "advSecretKey", "registrationId")

_NESTED = ("signed_pre_key", "account_settings")

_ACCOUNT_FIELDS = ("details", "accountSignatureKey", "accountSignature", "deviceSignature")


def snake_case(name: str) -> str:
    return _CAMEL.sub("_", name).lower()


def is_baileys_creds(d: dict[str, Any]) -> bool:
    return any(k in d for k in _BAILEYS_MARKERS)


def encode_account(account: dict[str, Any]) -> bytes:
    # Import lazily; the generated WAProto module is large.
    from pyaileys.proto import WAProto_pb2 as proto

    fields = {
        k: bytes(v)
        for k, v in account.items()
        if k in _ACCOUNT_FIELDS and isinstance(v, (bytes, bytearray, memoryview))
    }
    return bytes(proto.ADVSignedDeviceIdentity(**fields).SerializeToString())


def normalize_creds_dict(d: dict[str, Any]) -> dict[str, Any]:
    """Return `d` in the pyaileys layout. pyaileys-written dicts pass through unchanged."""

    if not is_baileys_creds(d):
        return d

    out = {snake_case(k): v for k, v in d.items()}
    for key in _NESTED:
        nested = out.get(key)
        if isinstance(nested, dict):
            out[key] = {snake_case(k): v for k, v in nested.items()}

    account = out.get("account")
    if isinstance(account, dict):
        out["account"] = encode_account(account)
    return out
