import logging
from typing import Optional
from typing import Union

from cryptojwt.key_jar import KeyJar
from idpyoidc.client.client_auth import client_auth_setup
from idpyoidc.client.client_auth import method_to_item
from idpyoidc.configure import Configuration
from idpyoidc.impexp import ImpExp

from rpservice.defaults import DEFAULT_CLIENT_AUTHN_METHODS

logger = logging.getLogger(__name__)

DEFAULT_ALLOW = {
    "http_links": False,
    "non_standard_issuer": False
}


class ServiceContext(ImpExp):
    """
    Information shared by all the services of one relying party.
    Services read from and write to this, it lives as long as the relying
    party does.
    """
    parameter = {
        "allow": {},
        "base_url": "",
        "client_id": "",
        "client_secret": "",
        "issuer": "",
        "keyjar": KeyJar,
        "provider_info": {},
        "redirect_uris": [],
    }

    def __init__(self,
                 config: Optional[Union[dict, Configuration]] = None,
                 keyjar: Optional[KeyJar] = None,
                 **kwargs):
        ImpExp.__init__(self)

        if config is None:
            config = {}

        self.config = config
        self.issuer = config.get("issuer", "")
        self.base_url = config.get("base_url", "")
        self.client_id = config.get("client_id", "")
        self.client_secret = config.get("client_secret", "")
        self.redirect_uris = config.get("redirect_uris", [])
        self.provider_info = config.get("provider_info", {})

        self.allow = DEFAULT_ALLOW.copy()
        self.allow.update(config.get("allow", {}))

        self.keyjar = keyjar or KeyJar()
        self.setup_client_authn_methods(config)

        for param, default in self.parameter.items():
            _val = kwargs.get(param)
            if _val is not None:
                setattr(self, param, _val)

    def setup_client_authn_methods(self, config):
        _methods = config.get("client_authn_methods", DEFAULT_CLIENT_AUTHN_METHODS)
        self.client_authn_methods = client_auth_setup(method_to_item(_methods))

    def get(self, attr, default=None):
        return getattr(self, attr, default)

    def set(self, attr, val):
        setattr(self, attr, val)

    def set_issuer(self, issuer: str):
        if issuer != self.issuer:
            logger.info(f"Issuer changed from '{self.issuer}' to '{issuer}'")
        self.issuer = issuer

    def get_client_id(self) -> str:
        return self.client_id

    def get_usage(self, attr, default=None):
        return getattr(self, attr, default)

    def get_endpoint(self, name: str) -> str:
        return self.provider_info.get(name, "")

    def get_redirect_uri(self) -> str:
        if self.redirect_uris:
            return self.redirect_uris[0]
        return ""
