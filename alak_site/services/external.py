"""JSON-over-HTTP calls to the market data and news providers."""
import json
import urllib.error
import urllib.parse
import urllib.request

from flask import current_app


class ExternalApiError(RuntimeError):
    pass


def fetch_json(url, params=None, headers=None):
    if params:
        url = f"{url}?{urllib.parse.urlencode(params)}"
    req = urllib.request.Request(url, method='GET')
    req.add_header('Accept', 'application/json')
    for name, value in (headers or {}).items():
        req.add_header(name, value)
    timeout = current_app.config.get('EXTERNAL_API_TIMEOUT_SECONDS', 15)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:  # nosec B310
            body = response.read().decode('utf-8', errors='replace')
    except urllib.error.HTTPError as e:
        raise ExternalApiError(f'HTTP {e.code} from {urllib.parse.urlsplit(url).netloc}') from e
    except urllib.error.URLError as e:
        raise ExternalApiError(f'Request to {urllib.parse.urlsplit(url).netloc} failed: {e.reason}') from e
    try:
        return json.loads(body)
    except ValueError as e:
        raise ExternalApiError('Provider returned invalid JSON.') from e
