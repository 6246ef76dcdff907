from idpyoidc.exception import MissingRequiredAttribute as MessageMissingAttribute


class RPServiceError(Exception):
    pass


class MissingRequiredAttribute(RPServiceError, MessageMissingAttribute):
    pass


class UnrecognizedSchema(RPServiceError):
    pass


class IssuerPolicyError(RPServiceError, ValueError):
    pass


class NotFound(RPServiceError, KeyError):
    pass


class NonceConflict(RPServiceError):
    pass


class SerializationError(RPServiceError):
    pass


class UnSupported(RPServiceError):
    pass


class ResponseError(RPServiceError):
    pass


class StateMismatch(RPServiceError, ValueError):
    pass
