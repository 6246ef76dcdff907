import logging
from typing import Optional

from idpyoidc.message import Message

from rpservice.defaults import DEFAULT_CLIENT_AUTHN_METHOD
from rpservice.exception import MissingRequiredAttribute
from rpservice.exception import UnSupported
from rpservice.message import MessageKind
from rpservice.service import ServiceDescriptor

logger = logging.getLogger(__name__)


def client_authentication(service, request: Message, request_args: dict) -> dict:
    """
    Adds client authentication information to the request and/or the HTTP
    headers. Apart from *none* the methods are the idpyoidc client
    authentication methods configured in the service context.

    :param service: The service
    :param request: The request message, may be modified
    :param request_args: The request arguments, *client_authn_method* is
        picked from these if present
    :return: HTTP headers
    """
    _context = service.context
    _method = request_args.get("client_authn_method") or service.get_conf_attr(
        "client_authn_method", DEFAULT_CLIENT_AUTHN_METHOD)
    if not _context.client_id:
        raise MissingRequiredAttribute("client_id")

    if _method == "none":
        request["client_id"] = _context.client_id
        return {}

    if not _context.client_secret:
        raise MissingRequiredAttribute("client_secret")

    try:
        _authn = _context.client_authn_methods[_method]
    except KeyError:
        raise UnSupported(f"Client authentication method {_method} not configured")

    logger.debug(f"Client authentication using {_method}")
    http_args = _authn.construct(request, service, http_args={}, user=_context.client_id,
                                 password=_context.client_secret)
    if not http_args:
        return {}
    return http_args.get("headers", {})


def _session_key(request_args: dict, **kwargs) -> str:
    _key = kwargs.get("state") or request_args.get("state")
    if not _key:
        raise MissingRequiredAttribute("state")
    return _key


def _token_request(service, request_args, body_args, key) -> dict:
    _endpoint = service.context.get_endpoint("token_endpoint")
    if not _endpoint:
        raise MissingRequiredAttribute("token_endpoint")

    _request = service.request_cls(**body_args)
    # Stored without client credentials
    service.get_state_db().store_item(_request, key, service.descriptor.request_kind)

    headers = client_authentication(service, _request, request_args)
    _body, _content_type = service.get_request_body(_request)
    headers["Content-Type"] = _content_type

    return {
        "method": service.descriptor.http_method,
        "url": _endpoint,
        "body": _body,
        "headers": headers,
        "request": _request
    }


def construct_request(service, request_args: dict, **kwargs) -> dict:
    """
    The code and redirect_uri are picked from the authorization request and
    response bound to the session key. Explicitly given values win.
    """
    _key = _session_key(request_args, **kwargs)
    _body = {"grant_type": "authorization_code"}
    service.get_state_db().multiple_extend_request_args(
        _body, _key, ["redirect_uri", "code"],
        [MessageKind.AUTHORIZATION_REQUEST, MessageKind.AUTHORIZATION_RESPONSE])
    for param in ["code", "redirect_uri", "grant_type"]:
        if param in request_args:
            _body[param] = request_args[param]

    if "code" not in _body:
        raise MissingRequiredAttribute("code")

    return _token_request(service, request_args, _body, _key)


def construct_refresh_request(service, request_args: dict, **kwargs) -> dict:
    """
    The refresh token from the latest token response is used. A refresh
    response supersedes the original token response.
    """
    _key = _session_key(request_args, **kwargs)
    _state_db = service.get_state_db()
    _state = _state_db.get_state(_key)
    _kinds = [k for k in [MessageKind.TOKEN_RESPONSE, MessageKind.REFRESH_TOKEN_RESPONSE]
              if k.value in _state]

    _body = {"grant_type": "refresh_token"}
    _state_db.multiple_extend_request_args(_body, _key, ["refresh_token"], _kinds)
    if "refresh_token" in request_args:
        _body["refresh_token"] = request_args["refresh_token"]
    if "scope" in request_args:
        _body["scope"] = request_args["scope"]

    if "refresh_token" not in _body:
        raise MissingRequiredAttribute("refresh_token")

    return _token_request(service, request_args, _body, _key)


def _store_token_response(service, response, key, kind):
    if not key:
        raise MissingRequiredAttribute("state")
    if "access_token" not in response:
        raise MissingRequiredAttribute("access_token")
    service.get_state_db().store_item(response, key, kind)
    return response


def update_context(service, response, key: Optional[str] = ""):
    return _store_token_response(service, response, key, MessageKind.TOKEN_RESPONSE)


def update_context_refresh(service, response, key: Optional[str] = ""):
    return _store_token_response(service, response, key, MessageKind.REFRESH_TOKEN_RESPONSE)


ACCESS_TOKEN = ServiceDescriptor(
    service_name="accesstoken",
    construct_request=construct_request,
    update_context=update_context,
    http_method="POST",
    request_kind=MessageKind.TOKEN_REQUEST,
    response_kind=MessageKind.TOKEN_RESPONSE,
    uses_state=True,
)

REFRESH_ACCESS_TOKEN = ServiceDescriptor(
    service_name="refresh_token",
    construct_request=construct_refresh_request,
    update_context=update_context_refresh,
    http_method="POST",
    request_kind=MessageKind.REFRESH_TOKEN_REQUEST,
    response_kind=MessageKind.REFRESH_TOKEN_RESPONSE,
    uses_state=True,
)
