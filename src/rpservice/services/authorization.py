import logging
from typing import Optional

from rpservice.added_claims import strip_config_claims
from rpservice.exception import MissingRequiredAttribute
from rpservice.exception import NotFound
from rpservice.exception import StateMismatch
from rpservice.message import MessageKind
from rpservice.service import ServiceDescriptor
from rpservice.state import new_state_key

logger = logging.getLogger(__name__)


def construct_request(service, request_args: dict, **kwargs) -> dict:
    """
    Creates a new state, unless one is given, and stores the authorization
    request in it. If an OpenID Connect request a nonce is added and bound to
    the state.
    """
    _context = service.context
    _state_db = service.get_state_db()

    _endpoint = _context.get_endpoint("authorization_endpoint")
    if not _endpoint:
        raise MissingRequiredAttribute("authorization_endpoint")

    _args = strip_config_claims(request_args)
    for attr, default in [("client_id", _context.client_id),
                          ("redirect_uri", _context.get_redirect_uri())]:
        if not _args.get(attr):
            if not default:
                raise MissingRequiredAttribute(attr)
            _args[attr] = default
    _args.setdefault("response_type", "code")
    _args.setdefault("scope", ["openid"])
    if isinstance(_args["scope"], str):
        _args["scope"] = _args["scope"].split()

    _key = _args.get("state") or kwargs.get("state")
    if _key:
        try:
            _state_db.get_iss(_key)
        except NotFound:
            _state_db.create_state(_context.issuer, key=_key)
    else:
        if not _context.issuer:
            raise MissingRequiredAttribute("issuer")
        _key = _state_db.create_state(_context.issuer)
    _args["state"] = _key

    if "openid" in _args["scope"] and not _args.get("nonce"):
        _args["nonce"] = new_state_key()

    if _args.get("nonce"):
        _state_db.store_nonce2state(_args["nonce"], _key)

    _request = service.request_cls(**_args)
    _state_db.store_item(_request, _key, service.descriptor.request_kind)

    return {
        "method": "GET",
        "url": _request.request(_endpoint),
        "request": _request
    }


def update_context(service, response, key: Optional[str] = ""):
    _state = response.get("state")
    if not key:
        key = _state
    if not key:
        raise MissingRequiredAttribute("state")
    if _state != key:
        raise StateMismatch(f"Response state {_state} does not match {key}")

    _state_db = service.get_state_db()
    # Must have been created by the authorization request
    _state_db.get_iss(key)
    _state_db.store_item(response, key, MessageKind.AUTHORIZATION_RESPONSE)
    return response


AUTHORIZATION = ServiceDescriptor(
    service_name="authorization",
    construct_request=construct_request,
    update_context=update_context,
    http_method="GET",
    request_kind=MessageKind.AUTHORIZATION_REQUEST,
    response_kind=MessageKind.AUTHORIZATION_RESPONSE,
    response_body_type="urlencoded",
    uses_state=True,
)
