"""
The state database.

This is a key,value store. The keys are session keys (the *state* parameter in
OAuth2/OIDC). The values bound to a key has an internal structure that again
is key,value based. There the keys are message kinds and the values the JSON
representation of the corresponding messages. Besides the message kinds there
is one more key, *iss*, which has as value the issuer ID of the
Authorization Server.

A separate index maps nonces to session keys.
"""
import json
import logging
import secrets
import string
import threading
from contextlib import contextmanager
from typing import List
from typing import MutableMapping
from typing import Optional

from idpyoidc.impexp import ImpExp
from idpyoidc.message import Message

from rpservice.exception import NonceConflict
from rpservice.exception import NotFound
from rpservice.exception import SerializationError
from rpservice.message import MessageKind
from rpservice.message import State
from rpservice.message import deserialize
from rpservice.message import serialize

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
KEY_CHARACTERS = string.ascii_letters + string.digits


def new_state_key(size: Optional[int] = KEY_LENGTH) -> str:
    return "".join(secrets.choice(KEY_CHARACTERS) for _ in range(size))


class KeyedLock(object):
    """
    One reentrant lock per key. Locks on different keys never contend.
    A lock only exists while someone holds or waits for it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks = {}

    @contextmanager
    def __call__(self, key):
        with self._guard:
            _entry = self._locks.get(key)
            if _entry is None:
                _entry = self._locks[key] = [threading.RLock(), 0]
            _entry[1] += 1
        try:
            with _entry[0]:
                yield
        finally:
            with self._guard:
                _entry[1] -= 1
                if _entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


class StateInterface(ImpExp):
    parameter = {
        "_db": {},
        "_nonce": {}
    }

    def __init__(self,
                 db: Optional[MutableMapping] = None,
                 nonce_db: Optional[MutableMapping] = None):
        """
        :param db: Where the states are kept. Defaults to a dictionary.
        :param nonce_db: Where the nonce to session key bindings are kept.
        """
        ImpExp.__init__(self)
        self._db = {} if db is None else db
        self._nonce = {} if nonce_db is None else nonce_db
        self._key_lock = KeyedLock()
        self._nonce_lock = KeyedLock()

    def _get_record(self, key: str) -> dict:
        _data = self._db.get(key)
        if _data is None:
            raise NotFound(f"Unknown state key: {key}")
        try:
            return json.loads(_data)
        except (TypeError, ValueError) as err:
            raise SerializationError(f"Stored state for {key} is broken: {err}")

    def _set_record(self, key: str, record: dict):
        try:
            self._db[key] = json.dumps(record)
        except (TypeError, ValueError) as err:
            raise SerializationError(f"Could not serialize state for {key}: {err}")

    def create_state(self, iss: str, key: Optional[str] = "") -> str:
        """
        Makes a new entry in the state database binding the issuer to a
        new session key.

        :param iss: The issuer ID
        :param key: A session key, only for testing, normally a new one is
            created.
        :return: The session key
        """
        if not key:
            key = new_state_key()
            while key in self._db:
                key = new_state_key()

        with self._key_lock(key):
            self._set_record(key, {"iss": iss})

        logger.debug(f"Created state {key} for issuer {iss}")
        return key

    def get_state(self, key: str) -> State:
        with self._key_lock(key):
            _record = self._get_record(key)
        return State(**_record)

    def store_item(self, item, key: str, kind: MessageKind):
        """
        Store a message. Overwrites any earlier message of the same kind.

        :param item: The message, either a Message instance or a dictionary
        :param key: The session key
        :param kind: The kind of message, used as sub key
        """
        _text = serialize(item, kind)
        with self._key_lock(key):
            try:
                _record = self._get_record(key)
            except NotFound:
                _record = {}
            _record[kind.value] = _text
            self._set_record(key, _record)

    def get_item(self, key: str, kind: MessageKind) -> Message:
        """
        Get a message of a specific kind bound to a session key.

        :param key: The session key
        :param kind: The kind of message
        :return: A Message instance of the class that matches the kind
        """
        with self._key_lock(key):
            _record = self._get_record(key)
        try:
            _text = _record[kind.value]
        except KeyError:
            raise NotFound(f"No {kind.value} stored for state {key}")
        return deserialize(_text, kind)

    def get_iss(self, key: str) -> str:
        with self._key_lock(key):
            _record = self._get_record(key)
        try:
            return _record["iss"]
        except KeyError:
            raise NotFound(f"No issuer bound to state {key}")

    def extend_request_args(self, args: dict, kind: MessageKind, key: str,
                            parameters: List[str]) -> dict:
        """
        Add a set of parameters and their values to a set of request arguments.

        :param args: The request arguments
        :param kind: Which message to pick the values from
        :param key: The session key
        :param parameters: Parameters to look for. Those not present in the
            message are not touched in *args*.
        :return: The possibly augmented set of arguments
        """
        _item = self.get_item(key, kind)
        for param in parameters:
            if param in _item:
                args[param] = _item[param]
        return args

    def multiple_extend_request_args(self, args: dict, key: str, parameters: List[str],
                                     kinds: List[MessageKind]) -> dict:
        """
        Go through a set of messages (by their kind) and add the
        parameter-value pairs that matches the list of parameters.
        If the same parameter occurs in two different messages then the value
        in the later one is used.

        :param args: Initial set of arguments
        :param key: The session key
        :param parameters: A list of parameters that we are looking for
        :param kinds: Message kinds in the order they should be applied
        :return: A possibly augmented set of arguments.
        """
        for kind in kinds:
            args = self.extend_request_args(args, kind, key, parameters)
        return args

    def store_nonce2state(self, nonce: str, key: str):
        """
        Store the connection between a nonce value and a session key. This
        allows us later to find the state if we have the nonce.
        A nonce can only ever be bound to one session key.
        """
        with self._nonce_lock(nonce):
            _bound = self._nonce.get(nonce)
            if _bound is None:
                self._nonce[nonce] = key
            elif _bound != key:
                raise NonceConflict(f"Nonce already bound to another state: {nonce}")

    def get_state_by_nonce(self, nonce: str) -> str:
        """
        Find the session key by providing the nonce value.
        The binding is not consumed.
        """
        with self._nonce_lock(nonce):
            try:
                return self._nonce[nonce]
            except KeyError:
                raise NotFound(f"Unknown nonce: {nonce}")

    def remove_state(self, key: str):
        with self._key_lock(key):
            try:
                del self._db[key]
            except KeyError:
                raise NotFound(f"Unknown state key: {key}")

        for nonce in [n for n, k in list(self._nonce.items()) if k == key]:
            with self._nonce_lock(nonce):
                self._nonce.pop(nonce, None)
