"""Credential providers for the registry client.

A provider is called as ``provider(namespace, repository, challenge=None)``
and returns the value for the ``Authorization`` header, or None to send the
request anonymously. After a 401 the client calls it once more with the
``WWW-Authenticate`` header of the response as ``challenge``.
"""

import base64
import json
import os
from pathlib import Path

import requests
import www_authenticate
from case_insensitive_dict import CaseInsensitiveDict

from console import log


DOCKER_HOSTS = [
    'index.docker.io',
    'index.docker.com',
    'registry.docker.io',
    'registry.docker.com',
    'registry-1.docker.io',
    'registry-1.docker.com',
    'hub.docker.com',
    'docker.io',
    'docker.com',
]


def default_config_file():
    config_dir = os.environ.get('DOCKER_CONFIG')
    if config_dir:
        return str(Path(config_dir) / 'config.json')
    return str(Path('~/.docker/config.json').expanduser())


def normalize_host(key):
    # config keys may be full urls like https://index.docker.io/v1/
    if '://' in key:
        key = key.split('://', 1)[1]
    return key.split('/', 1)[0]


def decode_login(entry):
    login = base64.b64decode(entry['auth']).decode('utf-8')
    parts = login.split(':', 1)
    if len(parts) != 2:
        return None
    return (parts[0], parts[1])


def get_auth_from_config(api, config_file=None):
    config_file = config_file or default_config_file()
    if not os.path.isfile(config_file):
        return None

    with open(config_file) as reader:
        content = reader.read()

    o = json.loads(content)
    if 'auths' not in o:
        return None
    auths = {normalize_host(k): v for k, v in o['auths'].items()}

    if api in auths and 'auth' in auths[api]:
        log('Use login for', api, level=1)
        return decode_login(auths[api])

    if api in DOCKER_HOSTS:
        for host in DOCKER_HOSTS:
            if host in auths and 'auth' in auths[host]:
                log('Use login for', host, level=1)
                return decode_login(auths[host])

    return None


class StaticTokenCredentials:
    def __init__(self, token):
        if ' ' not in token:
            token = 'Bearer ' + token
        self.header = token

    def __call__(self, namespace, repository, challenge=None):
        return self.header


class RegistryTokenCredentials:
    """Answers registry bearer challenges with a token from the challenge's realm.

    The login from the docker config file is used for the token request when
    one exists for the host. Tokens are cached per host and repository.
    """

    def __init__(self, api, config_file=None, session=None, timeout=30):
        self.api = api
        self.timeout = timeout
        self.config_file = config_file
        self.session = session or requests.Session()
        self.token_cache = {}

    def cache_key(self, namespace, repository):
        return self.api + '+' + namespace + '/' + repository

    def __call__(self, namespace, repository, challenge=None):
        cache_key = self.cache_key(namespace, repository)
        if challenge is None:
            return self.token_cache.get(cache_key)
        token = self.retrieve_new_token(challenge)
        if token is not None:
            self.token_cache[cache_key] = token
        return token

    def retrieve_new_token(self, www_authenticate_header):
        parsed = www_authenticate.parse(www_authenticate_header)
        if len(parsed) != 1:
            return None
        auth_type = [x for x in parsed.keys()][0]
        if auth_type.lower() != 'bearer':
            return None
        params = CaseInsensitiveDict[str, str](data=parsed[auth_type])
        if 'realm' not in params:
            return None
        url = params.pop('realm')
        auth = get_auth_from_config(self.api, self.config_file)
        r = self.session.get(url, params=dict(params.items()), auth=auth, timeout=self.timeout)
        if r.status_code in (401, 403):
            return None
        r.raise_for_status()
        o = r.json()
        token = o.get('token') or o.get('access_token')
        if not token:
            return None
        return 'Bearer ' + token
