import time
from time import sleep
from urllib.parse import quote, urljoin

import requests
from case_insensitive_dict import CaseInsensitiveDict

from console import log


DEFAULT_HOSTS = {
    'hub': 'hub.docker.com',
    'registry': 'registry-1.docker.io',
}

# failures of the connection itself, worth another attempt
TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout, requests.exceptions.ChunkedEncodingError)

# upper bound for a wait announced by a rate limited registry
MAX_RETRY_AFTER = 900


class RegistryError(Exception):
    def __init__(self, namespace, repository, cause):
        self.namespace = namespace
        self.repository = repository
        self.cause = cause
        super().__init__(namespace + '/' + repository + ': ' + str(cause))


class AuthenticationError(RegistryError):
    pass


class NotFoundError(RegistryError):
    pass


class ProtocolError(RegistryError):
    pass


class TransientNetworkError(RegistryError):
    def __init__(self, namespace, repository, cause, retry_after=None):
        super().__init__(namespace, repository, cause)
        self.retry_after = retry_after


def with_retry(func, retries=3, backoff=1.0):
    attempt = 0
    while True:
        try:
            return func()
        except TransientNetworkError as err:
            if attempt >= retries:
                raise
            if err.retry_after is not None:
                delay = min(err.retry_after, MAX_RETRY_AFTER)
            else:
                delay = backoff * 2 ** attempt
            attempt += 1
            log('Failed, retrying in ' + str(delay) + 's (' + str(attempt) + '/' + str(retries) + '):', err)
            sleep(delay)


def retry_after(headers):
    if 'retry-after' in headers:
        try:
            return max(0, int(headers['retry-after']))
        except ValueError:
            pass
    # docker hub announces the end of the rate limit window as a timestamp
    if 'x-retry-after' in headers:
        try:
            return max(0, int(headers['x-retry-after']) - int(time.time()))
        except ValueError:
            pass
    return None


class DockerHubApi:
    name = 'hub'

    def first_url(self, host, namespace, repository, page_size):
        return 'https://' + host + '/v2/namespaces/' + quote(namespace) + '/repositories/' + quote(repository) + \
            '/tags?page_size=' + str(page_size)

    def parse_page(self, response, url):
        o = response.json()
        if not isinstance(o, dict) or not isinstance(o.get('results'), list):
            raise ValueError('expected an object with a "results" list')
        tags = []
        for x in o['results']:
            if not isinstance(x, dict) or not isinstance(x.get('name'), str):
                raise ValueError('tag entry without a name: ' + repr(x))
            tags.append(x['name'])
        next_url = o.get('next')
        if next_url is not None and not isinstance(next_url, str):
            raise ValueError('"next" is not a url: ' + repr(next_url))
        return tags, next_url or None


class RegistryV2Api:
    name = 'registry'

    def first_url(self, host, namespace, repository, page_size):
        return 'https://' + host + '/v2/' + quote(namespace) + '/' + quote(repository) + '/tags/list?n=' + str(page_size)

    def parse_page(self, response, url):
        o = response.json()
        if not isinstance(o, dict):
            raise ValueError('expected an object with a "tags" list')
        tags = o.get('tags')
        # an empty repository reports "tags": null
        if tags is None:
            tags = []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValueError('"tags" is not a list of names')
        next_link = response.links.get('next')
        next_url = urljoin(url, next_link['url']) if next_link and next_link.get('url') else None
        return tags, next_url


APIS = {
    'hub': DockerHubApi,
    'registry': RegistryV2Api,
}


class RegistryClient:
    """Lists every tag of a repository, page by page.

    ``credentials`` is a provider as described in the credentials module and
    ``session`` anything with a requests compatible ``get``.
    """

    def __init__(self, host=None, api='hub', credentials=None, session=None, page_size=100, retries=3,
                 backoff=1.0, timeout=30):
        self.api = APIS[api]()
        self.host = host or DEFAULT_HOSTS[api]
        self.credentials = credentials
        self.session = session or requests.Session()
        self.page_size = page_size
        self.retries = retries
        self.backoff = backoff
        self.timeout = timeout

    def list_tags(self, namespace, repository):
        url = self.api.first_url(self.host, namespace, repository, self.page_size)
        page = 0
        while url:
            page += 1
            log('Read page', page, 'of', namespace + '/' + repository, level=1)
            tags, next_url = with_retry(lambda url=url: self.fetch_page(namespace, repository, url),
                                        retries=self.retries, backoff=self.backoff)
            if next_url == url:
                raise ProtocolError(namespace, repository, 'next page points back to ' + url)
            for tag in tags:
                yield tag
            url = next_url

    def fetch_page(self, namespace, repository, url):
        r = self.request(namespace, repository, url)
        try:
            return self.api.parse_page(r, url)
        except ValueError as err:
            raise ProtocolError(namespace, repository, 'unexpected page from ' + url + ': ' + str(err))

    def authorize(self, namespace, repository, challenge=None):
        if self.credentials is None:
            return None
        try:
            return self.credentials(namespace, repository, challenge=challenge)
        except TRANSIENT_ERRORS as err:
            raise TransientNetworkError(namespace, repository, err)
        except requests.HTTPError as err:
            status = err.response.status_code if err.response is not None else None
            if status is not None and (status == 429 or status >= 500):
                raise TransientNetworkError(namespace, repository, 'token request failed: ' + str(err))
            raise AuthenticationError(namespace, repository, 'token request failed: ' + str(err))
        except (requests.RequestException, ValueError) as err:
            raise ProtocolError(namespace, repository, 'unexpected token response: ' + str(err))

    def request(self, namespace, repository, url):
        token = self.authorize(namespace, repository)

        i = 0
        while True:
            i += 1
            headers = {'Accept': 'application/json'}
            if token is not None:
                headers['Authorization'] = token
            try:
                r = self.session.get(url, headers=headers, timeout=self.timeout)
            except TRANSIENT_ERRORS as err:
                raise TransientNetworkError(namespace, repository, err)
            except requests.RequestException as err:
                raise ProtocolError(namespace, repository, err)
            # Unauthorized?
            if r.status_code == 401 and i <= 1:
                response_headers = CaseInsensitiveDict[str, str](data=r.headers)
                if 'www-authenticate' not in response_headers:
                    break
                token = self.authorize(namespace, repository, response_headers['www-authenticate'])
                if token is None:
                    break
            else:
                break

        self.check_status(namespace, repository, url, r)
        return r

    def check_status(self, namespace, repository, url, r):
        status = r.status_code
        if 200 <= status < 300:
            return
        cause = 'HTTP ' + str(status) + ' from ' + url
        if status in (401, 403):
            raise AuthenticationError(namespace, repository, cause)
        if status == 404:
            raise NotFoundError(namespace, repository, cause)
        if status == 429:
            headers = CaseInsensitiveDict[str, str](data=r.headers)
            raise TransientNetworkError(namespace, repository, cause, retry_after=retry_after(headers))
        if status >= 500:
            raise TransientNetworkError(namespace, repository, cause)
        raise ProtocolError(namespace, repository, cause)
