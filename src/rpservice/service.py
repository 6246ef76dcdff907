"""
The request/response pipeline that all services share.

A service is described by a :py:class:`ServiceDescriptor`, static data plus
two functions. One that constructs the request and one that updates the
service context (and/or the state database) with information from a
verified response.
"""
import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Callable
from typing import Optional
from typing import Tuple
from typing import Union

from cryptojwt.utils import importer
from idpyoidc.constant import JSON_ENCODED
from idpyoidc.constant import URL_ENCODED
from idpyoidc.message import Message
from idpyoidc.message.oauth2 import ResponseMessage

from rpservice.added_claims import AddedClaims
from rpservice.context import ServiceContext
from rpservice.exception import MissingRequiredAttribute
from rpservice.exception import ResponseError
from rpservice.exception import UnSupported
from rpservice.message import MessageKind
from rpservice.message import message_class
from rpservice.state import StateInterface

logger = logging.getLogger(__name__)

REQUEST_INFO = "Doing request with: URL:{}, method:{}, data:{}, https_args:{}"


@dataclass(frozen=True)
class ServiceDescriptor:
    service_name: str
    construct_request: Callable
    update_context: Callable
    http_method: str = "GET"
    request_kind: Optional[MessageKind] = None
    response_kind: Optional[MessageKind] = None
    request_body_type: str = "urlencoded"
    response_body_type: str = "json"
    default_conf: dict = field(default_factory=dict)
    uses_state: bool = False


class Service(object):
    def __init__(self,
                 descriptor: ServiceDescriptor,
                 context: ServiceContext,
                 state_db: Optional[StateInterface] = None,
                 conf: Optional[dict] = None,
                 added_claims: Optional[AddedClaims] = None):
        self.descriptor = descriptor
        self.context = context
        self.state_db = state_db

        self.conf = dict(descriptor.default_conf)
        if conf:
            self.conf.update(conf)

        self.added_claims = added_claims or AddedClaims()

    @property
    def service_name(self):
        return self.descriptor.service_name

    @property
    def request_cls(self):
        if self.descriptor.request_kind:
            return message_class(self.descriptor.request_kind)
        return Message

    @property
    def response_cls(self):
        if self.descriptor.response_kind:
            return message_class(self.descriptor.response_kind)
        return Message

    @property
    def response_body_type(self):
        return self.descriptor.response_body_type

    def get_conf_attr(self, attr, default=None):
        return self.conf.get(attr, default)

    def upstream_get(self, what, *args):
        """
        Gives helpers written for idpyoidc services, like the client
        authentication methods, access to the service context.
        """
        if what == "context":
            return self.context
        elif what == "attribute":
            return getattr(self.context, args[0], None)
        return None

    def get_request_body(self, request: Message) -> Tuple[str, str]:
        """
        Serializes a request according to the request body type of the
        service.

        :param request: The request
        :return: A tuple of the body and its content type
        """
        _type = self.descriptor.request_body_type
        if _type == "urlencoded":
            return request.to_urlencoded(), URL_ENCODED
        elif _type == "json":
            return request.to_json(), JSON_ENCODED
        raise UnSupported(f"Unknown request body type: {_type}")

    def get_state_db(self) -> StateInterface:
        if self.state_db is None:
            raise MissingRequiredAttribute(
                f"The {self.service_name} service needs a state database")
        return self.state_db

    def gather_request_args(self, request_args: Optional[dict] = None) -> dict:
        """
        Layered request arguments. Lowest precedence is the static service
        configuration, then the added claims and at the top the arguments
        given in the call.
        """
        _args = dict(self.conf.get("default_request_args", {}))
        _args.update(self.added_claims.request_args())
        if request_args:
            _args.update(request_args)
        return _args

    def get_request_parameters(self, request_args: Optional[dict] = None, **kwargs) -> dict:
        """
        Builds the request message and constructs the HTTP headers.

        This is the starting point for a pipeline that will:

        - merge the configured, added and call specific arguments
        - construct the request message
        - gather a set of HTTP headers
        - serialize the request message into the necessary format

        :param request_args: Message arguments
        :param kwargs: extra keyword arguments
        :return: Dictionary with the necessary information for the HTTP
            request. Keys are 'method', 'url', 'headers' and 'body'.
        """
        _args = self.gather_request_args(request_args)
        _info = self.descriptor.construct_request(self, _args, **kwargs)

        if "method" not in _info:
            _info["method"] = self.descriptor.http_method
        _info.setdefault("headers", {})
        _info.setdefault("body", None)

        logger.debug(f"{self.service_name} request info: {_info}")
        return _info

    def gather_verify_arguments(self, response: Optional[Union[dict, Message]] = None) -> dict:
        kwargs = {
            "client_id": self.context.client_id,
            "iss": self.context.issuer,
            "keyjar": self.added_claims.key_jar or self.context.keyjar,
            "verify": self.added_claims.should_verify,
            "allow_missing_kid": self.added_claims.allow_missing_kid
        }
        if self.context.issuer.startswith("http://"):
            kwargs["allow_http"] = True
        return kwargs

    def parse_response(self, info, sformat: Optional[str] = "", key: Optional[str] = "",
                       **kwargs) -> Message:
        """
        Deserialize and verify a response. An error response is returned as a
        ResponseMessage instance and is never verified further.

        :param info: The response, can be either in a JSON or an urlencoded
            format or a dictionary.
        :param sformat: Which serialization that was used
        :param key: The session key
        :return: The parsed and verified response
        """
        if not sformat:
            sformat = self.response_body_type

        if sformat == "urlencoded" and "?" in info:
            info = info.split("?", 1)[1]

        logger.debug(f"response format: {sformat}")
        resp = self.response_cls().deserialize(info, sformat)

        if "error" in resp:
            resp = ResponseMessage().deserialize(info, sformat)
            resp.verify()
            logger.debug(f"Error response: {resp}")
            return resp

        _verify_args = self.gather_verify_arguments(resp)
        _verify_args.update(kwargs)
        if not resp.verify(**_verify_args):
            logger.error(f"Verification of the response failed: {resp}")
            raise ResponseError("Verification of the response failed")

        logger.debug(f"Parsed and verified response: {resp}")
        return resp

    def update_service_context(self, response: Message, key: Optional[str] = "", **kwargs):
        """
        Commits information from a parsed and verified response to the
        service context and/or the state database.

        :param response: The response as a Message instance
        :param key: The session key. Only for services that keep state.
        """
        if key and not self.descriptor.uses_state:
            raise UnSupported(
                f"A session key is not supported when updating the service context for "
                f"the {self.service_name} service")
        return self.descriptor.update_context(self, response, key)


def init_services(service_definitions: dict,
                  context: ServiceContext,
                  state_db: Optional[StateInterface] = None) -> dict:
    """
    Initiates a set of services.

    :param service_definitions: A dictionary containing service definitions,
        each a dictionary with a 'descriptor' and possibly 'kwargs'.
    :param context: The service context shared by all services
    :param state_db: The state database
    :return: A dictionary, with service name as key and the service instance
        as value.
    """
    service = {}
    for name, definition in service_definitions.items():
        _descriptor = definition["descriptor"]
        if isinstance(_descriptor, str):
            _descriptor = importer(_descriptor)

        _kwargs = definition.get("kwargs", {})
        if "added_claims" in _kwargs and isinstance(_kwargs["added_claims"], dict):
            _kwargs = dict(_kwargs)
            _kwargs["added_claims"] = AddedClaims.from_dict(_kwargs["added_claims"])

        service[name] = Service(_descriptor, context=context, state_db=state_db, **_kwargs)
        logger.debug(f"Initiated service '{name}' ({_descriptor.service_name})")

    return service
