"""
Spot Price Service

Serves GET /price: cache lookup, upstream fetch (the client already falls
back to the average price endpoint once), cache write, and stale-serving when
upstream is rate limiting.
"""

from core.config import Settings
from core.errors import UnsupportedCurrency, UpstreamError, UpstreamRequestFailed
from core.logging import get_logger
from core.schemas import PricePayload, PriceResponse, annotate
from core.symbols import resolve
from core.upstream_interface import UpstreamClient
from core.utils.time import Clock, system_clock
from storage.cache import CacheStore, price_cache_key


SUPPORTED_CURRENCY = "USD"

RATE_LIMIT_WARNING = "Upstream rate limit hit, serving cached price."


class PriceService:
    """
    Current quote for a single symbol.

    Args:
        client: Upstream market data client
        cache: Store for PricePayload entries (shared with HistoryService for
            its synthetic fallback)
        config: Settings providing CACHE_TTL_MS and PRICE_API_BASE
        clock: Callable returning epoch ms
    """

    def __init__(self, client: UpstreamClient, cache: CacheStore, config: Settings, clock: Clock = system_clock):
        self.client = client
        self.cache = cache
        self.config = config
        self.clock = clock
        self.logger = get_logger(__name__)

    async def handle_price(self, symbol: str, currency: str = SUPPORTED_CURRENCY) -> PriceResponse:
        """
        Resolve, serve from cache when fresh, otherwise fetch upstream.

        Raises:
            UnsupportedSymbol: Symbol not in the symbol table
            UnsupportedCurrency: Currency other than USD
            PriceUnavailable: Upstream answered without a price
            UpstreamRequestFailed: Upstream failed and no rate-limit fallback applied
        """
        symbol = (symbol or "BTC").strip().upper()
        currency = (currency or SUPPORTED_CURRENCY).strip().upper()

        ticker = resolve(symbol)
        if currency != SUPPORTED_CURRENCY:
            raise UnsupportedCurrency(details={"currency": currency})

        key = price_cache_key(ticker, currency)
        cached = self.cache.get(key, self.config.cache_ttl_ms)
        if cached and cached.fresh:
            self.logger.debug(f"Price cache hit: {key}")
            return annotate(cached.payload, PriceResponse, cached=True)

        try:
            price = await self.client.fetch_price(ticker)
        except UpstreamError as e:
            latest = self.cache.get(key, self.config.cache_ttl_ms) if e.is_rate_limited else None
            if latest:
                self.logger.warning(f"Rate limited fetching {ticker}; serving cached price from {latest.written_at}")
                return annotate(latest.payload, PriceResponse, cached=True, warning=RATE_LIMIT_WARNING)

            self.logger.error(f"Price request failed for {ticker}: {e} (status={e.status})")
            raise UpstreamRequestFailed.from_upstream(e)

        payload = PricePayload(
            symbol=symbol,
            currency=currency,
            price=price,
            source=self.config.price_api_base,
            timestamp=self.clock(),
        )
        self.cache.set(key, payload)

        return annotate(payload, PriceResponse, cached=False)
