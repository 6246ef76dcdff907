"""
WebFinger is used to discover information about people or other entities on
the Internet using standard HTTP methods. It discovers information for a URI
that might not be usable as a locator otherwise, such as account or email
URIs. See https://tools.ietf.org/html/rfc7033
"""
import logging
import re
from typing import Optional
from urllib.parse import urlparse

from idpyoidc.message.oidc import WebFingerRequest

from rpservice.defaults import OIC_ISSUER
from rpservice.defaults import WF_URL
from rpservice.exception import IssuerPolicyError
from rpservice.exception import MissingRequiredAttribute
from rpservice.exception import UnrecognizedSchema
from rpservice.message import MessageKind
from rpservice.message import link_info
from rpservice.service import ServiceDescriptor

logger = logging.getLogger(__name__)


def _first_segment(part: str) -> str:
    return part.replace("/", "#").replace("?", "#").split("#")[0]


def has_scheme(resource: str) -> bool:
    if "://" in resource:
        return True

    authority = _first_segment(resource)
    if ":" in authority:
        _, host_or_port = authority.split(":", 1)
        # host:port is not a scheme
        return re.match(r"^\d+$", host_or_port) is None
    return False


def acct_scheme_assumed(resource: str) -> bool:
    if "@" in resource:
        host = resource.split("@")[-1]
        return not (":" in host or "/" in host or "?" in host)
    return False


def normalize(resource: str) -> str:
    """
    Trims the resource, adds a scheme if there is none and removes any
    fragment.
    """
    resource = resource.strip()
    if has_scheme(resource):
        pass
    elif acct_scheme_assumed(resource):
        resource = f"acct:{resource}"
    else:
        resource = f"https://{resource}"
    return resource.split("#")[0]


def get_host(resource: str) -> str:
    if resource.startswith("http://") or resource.startswith("https://"):
        p = urlparse(resource)
        host = p.hostname or ""
        if host and p.port is not None:
            host = f"{host}:{p.port}"
    elif resource.startswith("acct:"):
        if "@" not in resource:
            raise ValueError(f"No host in {resource}")
        host = _first_segment(resource.split("@")[-1])
    elif resource.startswith("device:"):
        _parts = resource.split(":")
        host = _first_segment(_parts[1]) if len(_parts) > 1 else ""
    else:
        raise UnrecognizedSchema(f"{resource} has an unknown schema")

    if not host:
        raise ValueError(f"Could not find a host in {resource}")
    return host


def get_query(resource: str, rel: Optional[str] = "") -> str:
    """
    Constructs the WebFinger query URL. The host and port are picked from the
    normalized resource, path, query and fragment are discarded.
    Allowed schemes are http, https, acct and device.
    The resource is sent exactly as given.

    :param resource: The resource identifier
    :param rel: The link relation type, optional
    :return: The query URL
    """
    host = get_host(normalize(resource))

    _req = WebFingerRequest(set_defaults=False, resource=resource)
    if rel:
        _req["rel"] = rel
    else:
        # rel is optional in RFC 7033
        _req.lax = True

    return _req.request(WF_URL.format(host))


def construct_request(service, request_args: dict, **kwargs) -> dict:
    resource = request_args.get("resource")
    if not resource:
        resource = service.get_conf_attr("resource") or service.context.base_url
    if not resource:
        raise MissingRequiredAttribute("resource")

    return {
        "method": service.descriptor.http_method,
        "url": get_query(resource, rel=service.get_conf_attr("rel", OIC_ISSUER))
    }


def check_issuer_policy(href: str, allow: dict):
    p = urlparse(href)
    if p.scheme == "http" and not allow.get("http_links", False):
        raise IssuerPolicyError(f"http link not allowed: {href}")
    if (p.query or p.fragment) and not allow.get("non_standard_issuer", False):
        raise IssuerPolicyError(f"Non standard issuer not allowed: {href}")


def update_context(service, response, key: Optional[str] = ""):
    """
    Picks the first link with the configured relation type and binds its
    href as the issuer.
    """
    _links = response.get("links")
    if not _links:
        raise MissingRequiredAttribute("links")

    _rel = service.get_conf_attr("rel", OIC_ISSUER)
    _allow = dict(service.context.allow)
    _allow.update(service.get_conf_attr("allow", {}))

    for link in link_info(_links):
        if link.get("rel") == _rel:
            _href = link.get("href")
            if not _href:
                raise MissingRequiredAttribute(f"href in link with rel={_rel}")
            check_issuer_policy(_href, _allow)
            service.context.set_issuer(_href)
            break
    else:
        logger.info(f"No link with rel={_rel} in webfinger response")

    return response


WEBFINGER = ServiceDescriptor(
    service_name="webfinger",
    construct_request=construct_request,
    update_context=update_context,
    http_method="GET",
    response_kind=MessageKind.WEBFINGER_RESPONSE,
    response_body_type="json",
    default_conf={"rel": OIC_ISSUER},
)
