"""
Per service overrides that are layered on top of the static service
configuration and below the arguments given in a call.
"""
from dataclasses import dataclass
from dataclasses import fields
from dataclasses import replace
from typing import List
from typing import Optional
from typing import Tuple

from cryptojwt.jwk import JWK
from cryptojwt.key_jar import KeyJar

# Fields that never end up as request arguments
NON_REQUEST_FIELDS = ["key_jar", "keys", "should_verify", "allow_missing_kid"]
# Fields that are configuration rather than protocol parameters
CONFIG_FIELDS = ["issuer", "client_authn_method", "request_object_signing_alg", "algorithm",
                 "sig_kid", "request_method", "request_object_encryption_alg",
                 "request_object_encryption_enc", "encryption_kid", "target"]


@dataclass(frozen=True)
class AddedClaims:
    """
    Immutable snapshot of commonly used claims.

    The scope is kept as a tuple. Key material (key_jar and keys) is shared by
    reference between a snapshot and every snapshot derived from it, keys are
    owned by the KeyJar and never copied here.
    """
    client_id: Optional[str] = None
    issuer: Optional[str] = None
    key_jar: Optional[KeyJar] = None
    should_verify: bool = True
    scope: Optional[Tuple[str, ...]] = None
    resource: Optional[str] = None
    client_authn_method: Optional[str] = None
    request_object_signing_alg: Optional[str] = None
    algorithm: Optional[str] = None
    sig_kid: Optional[str] = None
    request_method: Optional[str] = None
    keys: Optional[List[JWK]] = None
    allow_missing_kid: bool = False
    request_object_encryption_alg: Optional[str] = None
    request_object_encryption_enc: Optional[str] = None
    encryption_kid: Optional[str] = None
    target: Optional[str] = None

    def __post_init__(self):
        if self.scope is not None and not isinstance(self.scope, tuple):
            if isinstance(self.scope, str):
                _scope = tuple(self.scope.split())
            else:
                _scope = tuple(self.scope)
            object.__setattr__(self, "scope", _scope)

    def derive(self, **overrides) -> "AddedClaims":
        """Returns a new snapshot with the given fields replaced."""
        return replace(self, **overrides)

    def request_args(self) -> dict:
        """The claims that has a value and that can be used in a request."""
        res = {}
        for field in fields(self):
            if field.name in NON_REQUEST_FIELDS:
                continue
            _val = getattr(self, field.name)
            if _val is None:
                continue
            if field.name == "scope":
                _val = list(_val)
            res[field.name] = _val
        return res

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)
                if f.name not in ["key_jar", "keys"]}

    @classmethod
    def from_dict(cls, info: Optional[dict] = None, **kwargs) -> "AddedClaims":
        _args = {}
        if info:
            _args.update(info)
        _args.update(kwargs)
        _names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in _args.items() if k in _names})


def strip_config_claims(args: dict) -> dict:
    """Removes the claims that only configures how a request is made."""
    return {k: v for k, v in args.items() if k not in CONFIG_FIELDS}
