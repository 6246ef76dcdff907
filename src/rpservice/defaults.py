from idpyoidc.client.oidc import OIC_ISSUER
from idpyoidc.client.oidc import WF_URL

DEFAULT_CLIENT_AUTHN_METHOD = "client_secret_basic"
DEFAULT_CLIENT_AUTHN_METHODS = ["client_secret_basic", "client_secret_post"]

DEFAULT_SERVICES = {
    "webfinger": {
        "descriptor": "rpservice.services.webfinger.WEBFINGER",
        "kwargs": {}
    },
    "authorization": {
        "descriptor": "rpservice.services.authorization.AUTHORIZATION",
        "kwargs": {}
    },
    "accesstoken": {
        "descriptor": "rpservice.services.access_token.ACCESS_TOKEN",
        "kwargs": {}
    },
    "refresh_token": {
        "descriptor": "rpservice.services.access_token.REFRESH_ACCESS_TOKEN",
        "kwargs": {}
    }
}
