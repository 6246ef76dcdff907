import json
from urllib.parse import parse_qs
from urllib.parse import urlparse

import pytest
from idpyoidc.message.oidc import JRD

from rpservice.added_claims import AddedClaims
from rpservice.context import ServiceContext
from rpservice.defaults import OIC_ISSUER
from rpservice.exception import IssuerPolicyError
from rpservice.exception import MissingRequiredAttribute
from rpservice.exception import UnrecognizedSchema
from rpservice.exception import UnSupported
from rpservice.service import Service
from rpservice.services.webfinger import WEBFINGER
from rpservice.services.webfinger import get_query
from rpservice.services.webfinger import normalize


def _query_parts(query):
    p = urlparse(query)
    return p.netloc, p.path, parse_qs(p.query)


@pytest.mark.parametrize("resource,host", [
    ("acct:joe@example.com", "example.com"),
    ("acct:joe@example.com/path?query", "example.com"),
    ("acct:joe@mail@example.com", "example.com"),
    ("https://example.com:8080/path", "example.com:8080"),
    ("https://example.com/path?x=1", "example.com"),
    ("http://example.com", "example.com"),
    ("device:p1.example.com", "p1.example.com"),
    ("device:p1.example.com/path", "p1.example.com"),
])
def test_query_host(resource, host):
    _host, _path, _query = _query_parts(get_query(resource))
    assert _host == host
    assert _path == "/.well-known/webfinger"
    assert _query["resource"] == [resource]


def test_query_resource_unmodified():
    _resource = "acct:joe@example.com"
    _query = get_query(_resource)
    assert _query == "https://example.com/.well-known/webfinger?resource=acct%3Ajoe%40example.com"
    assert _query_parts(_query)[2]["resource"] == [_resource]


def test_query_with_rel():
    _query = get_query("acct:joe@example.com", rel=OIC_ISSUER)
    assert _query_parts(_query)[2]["rel"] == [OIC_ISSUER]


def test_query_unknown_schema():
    with pytest.raises(UnrecognizedSchema):
        get_query("ftp://x")
    with pytest.raises(UnrecognizedSchema):
        get_query("mailto:joe@example.com")


def test_query_no_host():
    with pytest.raises(ValueError):
        get_query("acct:joe")
    with pytest.raises(ValueError):
        get_query("device:")


@pytest.mark.parametrize("resource,normalized", [
    ("  acct:joe@example.com ", "acct:joe@example.com"),
    ("joe@example.com", "acct:joe@example.com"),
    ("example.com", "https://example.com"),
    ("example.com:8080", "https://example.com:8080"),
    ("https://example.com/path#fragment", "https://example.com/path"),
    ("device:p1.example.com", "device:p1.example.com"),
])
def test_normalize(resource, normalized):
    assert normalize(resource) == normalized


def test_query_resource_not_normalized():
    _host, _, _query = _query_parts(get_query("joe@example.com"))
    assert _host == "example.com"
    assert _query["resource"] == ["joe@example.com"]

    _host, _, _query = _query_parts(get_query("  acct:joe@example.com "))
    assert _host == "example.com"
    assert _query["resource"] == ["  acct:joe@example.com "]

    _host, _, _query = _query_parts(get_query("https://example.com/joe#frag"))
    assert _host == "example.com"
    assert _query["resource"] == ["https://example.com/joe#frag"]


class TestWebfinger(object):
    @pytest.fixture(autouse=True)
    def create_service(self):
        self.context = ServiceContext(config={"base_url": "https://rp.example.com"})
        self.service = Service(WEBFINGER, self.context)

    def _response(self, *links):
        return JRD(subject="acct:joe@example.com", links=list(links))

    def test_request_parameters(self):
        _info = self.service.get_request_parameters(
            request_args={"resource": "acct:joe@example.com"})
        assert _info["method"] == "GET"
        _host, _, _query = _query_parts(_info["url"])
        assert _host == "example.com"
        assert _query["resource"] == ["acct:joe@example.com"]
        assert _query["rel"] == [OIC_ISSUER]

    def test_resource_from_added_claims(self):
        service = Service(WEBFINGER, self.context,
                          added_claims=AddedClaims(resource="acct:jane@example.org"))
        _info = service.get_request_parameters()
        assert _query_parts(_info["url"])[0] == "example.org"

        _info = service.get_request_parameters(request_args={"resource": "acct:joe@example.com"})
        assert _query_parts(_info["url"])[0] == "example.com"

    def test_resource_defaults_to_base_url(self):
        _info = self.service.get_request_parameters()
        _host, _, _query = _query_parts(_info["url"])
        assert _host == "rp.example.com"
        assert _query["resource"] == ["https://rp.example.com"]

    def test_missing_resource(self):
        service = Service(WEBFINGER, ServiceContext())
        with pytest.raises(MissingRequiredAttribute):
            service.get_request_parameters()

    def test_parse_and_update(self):
        _jrd = {
            "subject": "acct:joe@example.com",
            "links": [{"rel": OIC_ISSUER, "href": "https://op.example.com"}]
        }
        _resp = self.service.parse_response(json.dumps(_jrd), "json")
        self.service.update_service_context(_resp)
        assert self.context.issuer == "https://op.example.com"

    def test_update_empty_links(self):
        with pytest.raises(MissingRequiredAttribute):
            self.service.update_service_context(self._response())

    def test_update_no_links(self):
        with pytest.raises(MissingRequiredAttribute):
            self.service.update_service_context(JRD(subject="acct:joe@example.com"))

    def test_update_first_match_wins(self):
        _resp = self._response(
            {"rel": "author", "href": "https://example.com/joe"},
            {"rel": OIC_ISSUER, "href": "https://op.example.com"},
            {"rel": OIC_ISSUER, "href": "https://op2.example.com"})
        self.service.update_service_context(_resp)
        assert self.context.issuer == "https://op.example.com"

    def test_update_no_matching_rel(self):
        self.context.set_issuer("https://before.example.com")
        self.service.update_service_context(
            self._response({"rel": "author", "href": "https://example.com/joe"}))
        assert self.context.issuer == "https://before.example.com"

    def test_update_matching_link_without_href(self):
        with pytest.raises(MissingRequiredAttribute):
            self.service.update_service_context(self._response({"rel": OIC_ISSUER}))

    def test_update_http_link_not_allowed(self):
        self.context.set_issuer("https://before.example.com")
        with pytest.raises(ValueError):
            self.service.update_service_context(
                self._response({"rel": OIC_ISSUER, "href": "http://op.example.com"}))
        assert self.context.issuer == "https://before.example.com"

    def test_update_non_standard_issuer_not_allowed(self):
        self.context.allow["http_links"] = True
        with pytest.raises(IssuerPolicyError):
            self.service.update_service_context(
                self._response({"rel": OIC_ISSUER, "href": "https://op.example.com/?tenant=1"}))
        assert self.context.issuer == ""

    def test_update_http_link_allowed(self):
        self.context.allow["http_links"] = True
        self.service.update_service_context(
            self._response({"rel": OIC_ISSUER, "href": "http://op.example.com"}))
        assert self.context.issuer == "http://op.example.com"

    def test_update_both_flags_allow_any_link(self):
        service = Service(WEBFINGER, self.context,
                          conf={"allow": {"http_links": True, "non_standard_issuer": True}})
        service.update_service_context(
            self._response({"rel": OIC_ISSUER, "href": "http://op.example.com/?tenant=1"}))
        assert self.context.issuer == "http://op.example.com/?tenant=1"

    def test_update_configured_rel(self):
        service = Service(WEBFINGER, self.context, conf={"rel": "http://example.com/rel"})
        service.update_service_context(self._response(
            {"rel": OIC_ISSUER, "href": "https://op.example.com"},
            {"rel": "http://example.com/rel", "href": "https://other.example.com"}))
        assert self.context.issuer == "https://other.example.com"

    def test_update_with_key_not_supported(self):
        _resp = self._response({"rel": OIC_ISSUER, "href": "https://op.example.com"})
        with pytest.raises(UnSupported):
            self.service.update_service_context(_resp, key="abcdef")
        assert self.context.issuer == ""
