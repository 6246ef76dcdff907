import logging
from json import JSONDecodeError
from typing import Callable
from typing import Optional
from typing import Union

from cryptojwt.key_jar import KeyJar
from idpyoidc.client.defaults import SUCCESSFUL
from idpyoidc.client.util import get_content_type
from idpyoidc.client.util import get_deserialization_method
from idpyoidc.configure import Configuration
from idpyoidc.message import Message
from idpyoidc.message.oauth2 import ResponseMessage
from requests import request

from rpservice.context import ServiceContext
from rpservice.defaults import DEFAULT_SERVICES
from rpservice.exception import ResponseError
from rpservice.service import REQUEST_INFO
from rpservice.service import Service
from rpservice.service import init_services
from rpservice.state import StateInterface

logger = logging.getLogger(__name__)


class RPClient(object):
    """
    Ties the services of a relying party to an HTTP client. All services share
    one service context and one state database.
    """

    def __init__(self,
                 config: Optional[Union[dict, Configuration]] = None,
                 keyjar: Optional[KeyJar] = None,
                 services: Optional[dict] = None,
                 httpc: Optional[Callable] = None,
                 httpc_params: Optional[dict] = None,
                 context: Optional[ServiceContext] = None,
                 state_db: Optional[StateInterface] = None):
        """

        :param config: Configuration information passed on to the
            :py:class:`rpservice.context.ServiceContext` initialization
        :param keyjar: A py:class:`cryptojwt.key_jar.KeyJar` instance
        :param services: A list of service definitions
        :param httpc: A HTTP client to use
        :param httpc_params: HTTP request arguments
        :param context: A service context, if not given one is created
        :param state_db: A state database, if not given one is created
        """
        if config is None:
            config = {}

        self.context = context or ServiceContext(config=config, keyjar=keyjar)
        self.state_db = state_db or StateInterface()
        self.httpc = httpc or request
        self.httpc_params = httpc_params or config.get("httpc_params", {})

        _srvs = services or config.get("services") or DEFAULT_SERVICES
        self.service = init_services(_srvs, context=self.context, state_db=self.state_db)

    def get_service(self, service_name: str) -> Optional[Service]:
        try:
            return self.service[service_name]
        except KeyError:
            return None

    def do_request(self,
                   request_type: str,
                   request_args: Optional[dict] = None,
                   key: Optional[str] = "",
                   **kwargs):
        _srv = self.service[request_type]

        if key:
            kwargs["state"] = key
        _info = _srv.get_request_parameters(request_args=request_args, **kwargs)
        logger.debug(f"do_request info: {_info}")

        return self.service_request(_srv, key=key, **_info)

    def service_request(self,
                        service: Service,
                        url: str,
                        method: Optional[str] = "GET",
                        body: Optional[str] = None,
                        headers: Optional[dict] = None,
                        key: Optional[str] = "",
                        **kwargs) -> Message:
        """
        The method that sends the request and handles the response returned.
        This assumes that the response arrives in the HTTP response.

        :param service: The Service instance
        :param url: The URL to which the request should be sent
        :param method: Which HTTP method to use
        :param body: A message body if any
        :param headers: HTTP headers
        :param key: The session key
        :return: A Message instance, an error response or the HTTP response
            on a redirect.
        """
        if headers is None:
            headers = {}

        logger.debug(REQUEST_INFO.format(url, method, body, headers))

        try:
            resp = self.httpc(method, url, data=body, headers=headers, **self.httpc_params)
        except Exception as err:
            logger.error(f"Exception on request: {err}")
            raise

        response = self.parse_request_response(service, resp, key=key)
        if isinstance(response, Message) and "error" not in response:
            if service.descriptor.uses_state:
                service.update_service_context(response, key=key)
            else:
                service.update_service_context(response)
        return response

    def parse_request_response(self, service: Service, reqresp, key: Optional[str] = ""):
        """
        Deal with a self.httpc response. The response are expected to
        follow a special pattern, having the attributes:

            - headers (list of tuples with headers attributes and their values)
            - status_code (integer)
            - text (The text version of the response)
            - url (The calling URL)

        :param service: A :py:class:`rpservice.service.Service` instance
        :param reqresp: The HTTP request response
        :param key: Session key
        :return:
        """
        if reqresp.status_code in SUCCESSFUL:
            _deser_method = get_deserialization_method(get_content_type(reqresp))
            if _deser_method in ["json", "jwt", "urlencoded"]:
                value_type = _deser_method
            else:
                value_type = service.response_body_type

            logger.debug(f"Successful response: {reqresp.text}")
            try:
                return service.parse_response(reqresp.text, value_type, key)
            except Exception as err:
                logger.error(err)
                raise
        elif reqresp.status_code in [302, 303]:  # redirect
            return reqresp
        elif 400 <= reqresp.status_code < 500:
            logger.error(f"Error response ({reqresp.status_code}): {reqresp.text}")
            try:
                err_resp = ResponseMessage().from_json(reqresp.text)
            except (JSONDecodeError, ValueError):
                err_resp = ResponseMessage(error="invalid_request",
                                           error_description=reqresp.text)
            err_resp["status_code"] = reqresp.status_code
            return err_resp
        else:
            logger.error(f"Error response ({reqresp.status_code}): {reqresp.text}")
            raise ResponseError(
                f"HTTP ERROR: {reqresp.text} [{reqresp.status_code}] on {reqresp.url}")
