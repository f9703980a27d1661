# market_pipeline/alphavantage_client.py
# Purpose: tiny Alpha Vantage client with a fixed timeout + clear, classified errors.

import requests

from market_pipeline.errors import UpstreamError, UpstreamRateLimited, UpstreamTimeout

# Keys Alpha Vantage uses (with HTTP 200) when the free-tier budget is spent
THROTTLE_KEYS = ("Note", "Information")


class AlphaVantageClient:
    def __init__(self, api_key: str, base_url: str, timeout: float = 10.0, session=None):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _req(self, params: dict, label: str) -> dict:
        """GET with the API key + loud, helpful errors."""
        query = dict(params, apikey=self.api_key)
        try:
            r = self.session.get(self.base_url, params=query,
                                 headers={"Accept": "application/json"}, timeout=self.timeout)
        except requests.Timeout:
            raise UpstreamTimeout(
                f"AlphaVantage API request for {label} timed out after {self.timeout:g}s") from None
        except requests.RequestException as e:
            raise UpstreamError(f"AlphaVantage API unreachable for {label}: {e}") from e

        if r.status_code == 429:
            raise UpstreamRateLimited(f"AlphaVantage API error for {label}: 429 - {r.text[:200]}")
        if not r.ok:
            raise UpstreamError(f"AlphaVantage API error for {label}: {r.status_code} - {r.text[:200]}")
        try:
            data = r.json()
        except ValueError:
            raise UpstreamError(f"AlphaVantage returned non-JSON body for {label}") from None
        if not isinstance(data, dict):
            raise UpstreamError(f"Invalid data structure received from AlphaVantage for {label}")

        for key in THROTTLE_KEYS:
            if key in data:
                raise UpstreamRateLimited(f"AlphaVantage API rate limit for {label}: {str(data[key])[:200]}")
        if "Error Message" in data:
            raise UpstreamError(f"AlphaVantage API error for {label}: {str(data['Error Message'])[:200]}")
        return data

    def global_quote(self, symbol: str) -> dict:
        """'Global Quote' block for one symbol ('05. price', '10. change percent', ...)."""
        data = self._req({"function": "GLOBAL_QUOTE", "symbol": symbol}, symbol)
        quote = data.get("Global Quote")
        if not isinstance(quote, dict) or not quote.get("05. price"):
            raise UpstreamError(f"Invalid data structure received from AlphaVantage for {symbol}")
        return quote

    def top_gainers_losers(self) -> dict:
        """Market-wide scan: top_gainers / top_losers / most_actively_traded lists."""
        data = self._req({"function": "TOP_GAINERS_LOSERS"}, "TOP_GAINERS_LOSERS")
        if not isinstance(data.get("most_actively_traded"), list):
            raise UpstreamError("Invalid data structure received from AlphaVantage for TOP_GAINERS_LOSERS")
        return data
