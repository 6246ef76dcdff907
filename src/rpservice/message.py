"""Message kinds and the messages that are kept in the state database."""
import json
import logging
from enum import Enum

from idpyoidc.message import Message
from idpyoidc.message import SINGLE_REQUIRED_STRING
from idpyoidc.message import oauth2
from idpyoidc.message import oidc

from rpservice.exception import SerializationError

logger = logging.getLogger(__name__)


class MessageKind(Enum):
    AUTHORIZATION_REQUEST = "authorization_request"
    AUTHORIZATION_RESPONSE = "authorization_response"
    TOKEN_REQUEST = "token_request"
    TOKEN_RESPONSE = "token_response"
    REFRESH_TOKEN_REQUEST = "refresh_token_request"
    REFRESH_TOKEN_RESPONSE = "refresh_token_response"
    REGISTRATION_REQUEST = "registration_request"
    REGISTRATION_RESPONSE = "registration_response"
    USERINFO_REQUEST = "userinfo_request"
    USERINFO_RESPONSE = "userinfo_response"
    PROVIDER_INFO_RESPONSE = "provider_info_response"
    WEBFINGER_RESPONSE = "webfinger_response"


class State(Message):
    """
    What is bound to a session key. Apart from the issuer every item is the
    JSON representation of a message, the message kind's value is used as key.
    """
    c_param = {"iss": SINGLE_REQUIRED_STRING}


KIND2MESSAGE = {
    MessageKind.AUTHORIZATION_REQUEST: oidc.AuthorizationRequest,
    MessageKind.AUTHORIZATION_RESPONSE: oidc.AuthorizationResponse,
    MessageKind.TOKEN_REQUEST: oauth2.AccessTokenRequest,
    MessageKind.TOKEN_RESPONSE: oidc.AccessTokenResponse,
    MessageKind.REFRESH_TOKEN_REQUEST: oauth2.RefreshAccessTokenRequest,
    MessageKind.REFRESH_TOKEN_RESPONSE: oidc.AccessTokenResponse,
    MessageKind.REGISTRATION_REQUEST: oidc.RegistrationRequest,
    MessageKind.REGISTRATION_RESPONSE: oidc.RegistrationResponse,
    MessageKind.USERINFO_REQUEST: oidc.UserInfoRequest,
    MessageKind.USERINFO_RESPONSE: oidc.OpenIDSchema,
    MessageKind.PROVIDER_INFO_RESPONSE: oidc.ProviderConfigurationResponse,
    MessageKind.WEBFINGER_RESPONSE: oidc.JRD,
}


def message_class(kind: MessageKind):
    try:
        return KIND2MESSAGE[kind]
    except KeyError:
        raise ValueError(f"Unknown message kind: {kind}")


def serialize(message, kind: MessageKind) -> str:
    """Returns the JSON representation of a message of the given kind."""
    if isinstance(message, Message):
        _msg = message
    else:
        _msg = message_class(kind)(**message)

    try:
        return _msg.to_json()
    except (TypeError, ValueError) as err:
        raise SerializationError(f"Could not serialize {kind.value}: {err}")


def deserialize(text: str, kind: MessageKind) -> Message:
    try:
        return message_class(kind)().from_json(text)
    except (AttributeError, TypeError, ValueError) as err:
        logger.error(f"Could not deserialize {kind.value}: {err}")
        raise SerializationError(f"Could not deserialize {kind.value}: {err}")


def link_info(links) -> list:
    """
    Makes sure the links of a JRD are :py:class:`idpyoidc.message.oidc.Link`
    instances.

    :param links: list of dictionaries, JSON documents or Message instances
    :return: list of Link instances
    """
    res = []
    for link in links:
        if isinstance(link, oidc.Link):
            res.append(link)
            continue
        if isinstance(link, Message):
            link = link.to_dict()
        elif isinstance(link, str):
            link = json.loads(link)
        res.append(oidc.Link(**link))
    return res
