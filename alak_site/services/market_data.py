"""Daily benchmark price snapshots.

Brent, WTI and natural gas come from OilPriceAPI. MarketStack, when a key is
configured, fills in the refined products. Dubai, Murban and Bonny Light are
derived from Brent using fixed differentials.
"""
import json
from datetime import timedelta

from flask import current_app

from ..models import OilPrice, db
from ..repository import oil_prices as oil_prices_repo
from ..utils import utc_now_naive
from .external import ExternalApiError, fetch_json
from .jobs import STATUS_SKIPPED, STATUS_SUCCESS, api_enabled, job_result, record_api_call

OILPRICEAPI_URL = 'https://api.oilpriceapi.com/v1/prices/latest'
MARKETSTACK_URL = 'https://api.marketstack.com/v1/eod/latest'
OILPRICEAPI_NAME = 'oil_price_api'
MARKETSTACK_NAME = 'marketstack'

MARKETSTACK_FIELDS = {
    'NG': 'natural_gas_price',
    'HO': 'diesel_price',
    'RB': 'gasoline_price',
}
DUBAI_DISCOUNT_TO_BRENT = 1.5
MURBAN_PREMIUM_TO_DUBAI = 0.5
BONNY_LIGHT_PREMIUM_TO_BRENT = 1.5
TRACKED_BENCHMARKS = ('brent', 'wti', 'dubai_crude', 'murban', 'bonny_light', 'natural_gas')


def _as_price(value):
    try:
        return round(float(value), 2)
    except (TypeError, ValueError):
        return None


def fetch_benchmarks():
    api_key = current_app.config.get('OILPRICEAPI_KEY') or ''
    if not api_key:
        raise ExternalApiError('OilPriceAPI key is not configured.')
    try:
        payload = fetch_json(OILPRICEAPI_URL, headers={'Authorization': f'Token {api_key}'})
    except ExternalApiError as exc:
        record_api_call(OILPRICEAPI_NAME, error=exc)
        db.session.commit()
        raise
    data = payload.get('data') if isinstance(payload, dict) else None
    prices = {
        'brent_price': _as_price((data or {}).get('brent_crude_price')),
        'wti_price': _as_price((data or {}).get('wti_crude_price')),
        'natural_gas_price': _as_price((data or {}).get('natural_gas_price')),
    }
    if prices['brent_price'] is None:
        record_api_call(OILPRICEAPI_NAME, error='Response had no Brent price.')
        db.session.commit()
        raise ExternalApiError('OilPriceAPI response had no Brent price.')
    record_api_call(OILPRICEAPI_NAME)
    return prices


def fetch_products():
    """Refined product quotes from MarketStack; an empty dict when unavailable."""
    api_key = current_app.config.get('MARKETSTACK_API_KEY') or ''
    if not api_key or not api_enabled(MARKETSTACK_NAME):
        return {}
    try:
        payload = fetch_json(MARKETSTACK_URL, params={
            'access_key': api_key,
            'symbols': ','.join(MARKETSTACK_FIELDS),
        })
    except ExternalApiError as exc:
        record_api_call(MARKETSTACK_NAME, error=exc)
        current_app.logger.warning('MarketStack fetch failed: %s', exc)
        return {}
    record_api_call(MARKETSTACK_NAME)
    prices = {}
    for quote in (payload.get('data') or []) if isinstance(payload, dict) else []:
        field = MARKETSTACK_FIELDS.get(quote.get('symbol'))
        price = _as_price(quote.get('close', quote.get('price')))
        if field and price is not None:
            prices[field] = price
    return prices


def derive_benchmarks(prices):
    brent = prices.get('brent_price')
    if brent is None:
        return prices
    dubai = round(brent - DUBAI_DISCOUNT_TO_BRENT, 2)
    return dict(
        prices,
        dubai_crude_price=dubai,
        murban_price=round(dubai + MURBAN_PREMIUM_TO_DUBAI, 2),
        bonny_light_price=round(brent + BONNY_LIGHT_PREMIUM_TO_BRENT, 2),
    )


def price_change(current, previous):
    if current is None or not previous:
        return None, None
    change = round(current - previous, 2)
    return change, round(change / previous * 100, 2)


def analyze_trend(changes):
    """Market trend and the factors behind it from benchmark percent changes."""
    factors = []
    bullish = bearish = 0

    brent = changes.get('brent')
    if brent is not None:
        if brent > 2:
            bullish += 2
            factors.append(f'Brent crude up {brent}%')
        elif brent > 0.5:
            bullish += 1
            factors.append('Brent crude showing upward momentum')
        elif brent < -2:
            bearish += 2
            factors.append(f'Brent crude down {abs(brent)}%')
        elif brent < -0.5:
            bearish += 1
            factors.append('Brent crude showing downward pressure')

    wti = changes.get('wti')
    if wti is not None:
        if wti > 2:
            bullish += 1
            factors.append(f'WTI crude up {wti}%')
        elif wti < -2:
            bearish += 1
            factors.append(f'WTI crude down {abs(wti)}%')

    gas = changes.get('natural_gas')
    if gas is not None and abs(gas) > 3:
        factors.append(f"Natural gas {'surging' if gas > 0 else 'falling'} by {abs(gas)}%")

    if abs(bullish - bearish) <= 1 and bullish + bearish >= 2:
        return 'volatile', ['Markets showing mixed signals'] + factors
    if bullish > bearish:
        return 'bullish', ['Overall bullish market sentiment'] + factors
    if bearish > bullish:
        return 'bearish', ['Overall bearish market sentiment'] + factors
    return 'neutral', ['Markets trading in neutral territory'] + factors


def is_fetch_due(now=None):
    now = now or utc_now_naive()
    last_fetch = oil_prices_repo.get_latest_fetched_at()
    hours = current_app.config.get('PRICE_FETCH_INTERVAL_HOURS', 13)
    return last_fetch is None or now - last_fetch >= timedelta(hours=hours)


def fetch_and_store_prices(force=False):
    """Job handler: store today's snapshot, replacing an earlier one from today."""
    now = utc_now_naive()
    if not force and not is_fetch_due(now):
        return job_result(STATUS_SKIPPED, 'Not enough time since the last price fetch.')
    if not api_enabled(OILPRICEAPI_NAME):
        return job_result(STATUS_SKIPPED, 'OilPriceAPI is disabled.')

    benchmarks = fetch_benchmarks()
    products = fetch_products()
    merged = dict(products)
    merged.update({field: value for field, value in benchmarks.items() if value is not None})
    prices = derive_benchmarks(merged)
    today = now.date()
    previous = oil_prices_repo.get_previous(today)

    snapshot = oil_prices_repo.get_by_date(today)
    if snapshot is None:
        snapshot = OilPrice(price_date=today)
        db.session.add(snapshot)
    elif snapshot.auto_post_id is None:
        snapshot.auto_posted = False
    for field, value in prices.items():
        setattr(snapshot, field, value)

    percent_changes = {}
    for key in TRACKED_BENCHMARKS:
        current = prices.get(f'{key}_price')
        change, percent = price_change(current, getattr(previous, f'{key}_price', None))
        setattr(snapshot, f'{key}_change', change)
        setattr(snapshot, f'{key}_change_percent', percent)
        percent_changes[key] = percent

    trend, factors = analyze_trend(percent_changes)
    snapshot.market_trend = trend
    snapshot.trend_factors = json.dumps(factors, ensure_ascii=False)
    snapshot.source = 'oilpriceapi+marketstack' if products else 'oilpriceapi'
    snapshot.fetched_at = now
    db.session.commit()
    current_app.logger.info('Stored price snapshot for %s (trend=%s).', today, trend)
    return job_result(
        STATUS_SUCCESS,
        f'Stored {trend} price snapshot for {today.isoformat()}.',
        price_id=snapshot.id,
        brent_price=snapshot.brent_price,
        market_trend=trend,
    )
