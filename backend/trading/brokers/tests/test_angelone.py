# trading/brokers/tests/test_angelone.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest import mock

import requests
from django.test import SimpleTestCase

from trading.brokers.angelone.client import AngelOneClient
from trading.brokers.angelone.config import AngelOneConfig
from trading.brokers.angelone.mappers import (
    map_candle_request,
    map_candles,
    map_order_request,
    map_order_response,
    normalize_positions,
)
from trading.brokers.angelone.transport import AngelOneTransport, LOGIN_PATH, PLACE_ORDER_PATH
from trading.brokers.exceptions import AuthenticationFailed, MappingError, TransportError, VendorRejected
from trading.brokers.testing import InMemoryVault
from trading.brokers.tokens import TokenCache
from trading.brokers.types import BrokerCapability, BrokerOrderRequest, OrderSide, OrderType

CREDS = {
    "clientCode": "A123456",
    "password": "1234",
    "totpKey": "JBSWY3DPEHPK3PXP",
    "apiKey": "smart-api-key",
}

LOGIN_OK = {
    "status": True,
    "message": "SUCCESS",
    "data": {"jwtToken": "jwt-1", "refreshToken": "refresh-1", "feedToken": "feed-1"},
}


def _response(body, status=200):
    resp = mock.Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.json.return_value = body
    resp.content = b"{...}"
    return resp


def _request(trading_symbol="RELIANCE", exchange="NSE", **kwargs) -> BrokerOrderRequest:
    meta = {"exchange": exchange}
    if trading_symbol is not None:
        meta["tradingSymbol"] = trading_symbol
    defaults = dict(symbol="3045", side=OrderSide.BUY, quantity=Decimal("10"), order_type=OrderType.MARKET, meta=meta)
    defaults.update(kwargs)
    return BrokerOrderRequest(**defaults)


class AngelOneOrderMappingTests(SimpleTestCase):
    def test_equity_symbol_gets_suffix(self):
        payload = map_order_request(_request())

        self.assertEqual(payload["tradingsymbol"], "RELIANCE-EQ")
        self.assertEqual(payload["symboltoken"], "3045")
        self.assertEqual(payload["exchange"], "NSE")
        self.assertEqual(payload["transactiontype"], "BUY")
        self.assertEqual(payload["ordertype"], "MARKET")
        self.assertEqual(payload["producttype"], "INTRADAY")
        self.assertEqual(payload["variety"], "NORMAL")
        self.assertEqual(payload["duration"], "DAY")
        self.assertEqual(payload["price"], "0")
        self.assertEqual(payload["quantity"], "10")
        self.assertEqual(payload["squareoff"], "0")
        self.assertEqual(payload["stoploss"], "0")

    def test_suffix_is_not_duplicated(self):
        payload = map_order_request(_request(trading_symbol="RELIANCE-EQ", exchange="NSE_EQ"))
        self.assertEqual(payload["tradingsymbol"], "RELIANCE-EQ")
        self.assertEqual(payload["exchange"], "NSE")

    def test_non_equity_segment_keeps_symbol(self):
        payload = map_order_request(_request(trading_symbol="NIFTY25JANFUT", exchange="NSE_FNO"))
        self.assertEqual(payload["tradingsymbol"], "NIFTY25JANFUT")
        self.assertEqual(payload["exchange"], "NFO")

    def test_missing_trading_symbol_is_mapping_error(self):
        with self.assertRaisesMessage(MappingError, "Missing tradingSymbol in order metadata"):
            map_order_request(_request(trading_symbol=None))
        with self.assertRaises(MappingError):
            map_order_request(_request(trading_symbol="  "))

    def test_non_positive_quantity_is_mapping_error(self):
        with self.assertRaises(MappingError):
            map_order_request(_request(quantity=Decimal("0")))

    def test_limit_order_price_and_product_type(self):
        payload = map_order_request(_request(
            order_type=OrderType.STOP_LOSS,
            price=Decimal("2450.50"),
            meta={"tradingSymbol": "SBIN", "exchange": "NSE", "productType": "cnc"},
        ))
        self.assertEqual(payload["ordertype"], "STOPLOSS_LIMIT")
        self.assertEqual(payload["price"], "2450.5")
        self.assertEqual(payload["producttype"], "CNC")

    def test_order_response(self):
        self.assertEqual(map_order_response({"status": True, "data": {"orderid": "X1"}}).order_id, "X1")

        with self.assertRaises(VendorRejected) as ctx:
            map_order_response({"status": False, "message": "insufficient funds"})
        self.assertEqual(str(ctx.exception), "insufficient funds")


class AngelOnePositionTests(SimpleTestCase):
    def test_zero_net_positions_are_kept(self):
        body = {"status": True, "data": [
            {"tradingsymbol": "SBIN-EQ", "symboltoken": "3045", "netqty": "0", "avgnetprice": "600"},
            {"tradingsymbol": "TCS-EQ", "symboltoken": "11536", "netqty": "5", "avgnetprice": "3900"},
        ]}
        positions = normalize_positions(body)

        self.assertEqual([p.symbol for p in positions], ["SBIN-EQ", "TCS-EQ"])
        self.assertEqual(positions[0].position_type, "FLAT")

    def test_fallback_chains(self):
        [pos] = normalize_positions({"data": [{
            "tradingsymbol": "INFY-EQ",
            "netqty": "-4",
            "buyamount": "6000",
            "buyqty": "4",
            "close": "1510.25",
            "realised": "12.5",
            "unrealised": "-2.5",
        }]})

        self.assertEqual(pos.avg_price, Decimal("1500"))
        self.assertEqual(pos.ltp, Decimal("1510.25"))
        self.assertEqual(pos.pnl, Decimal("10.0"))
        self.assertEqual(pos.position_type, "SHORT")

    def test_pnl_field_wins_and_bad_numbers_are_zero(self):
        [pos] = normalize_positions({"data": [{"netqty": "abc", "pnl": "42", "realised": "1"}]})
        self.assertEqual(pos.net_quantity, Decimal("0"))
        self.assertEqual(pos.pnl, Decimal("42"))
        self.assertEqual(pos.avg_price, Decimal("0"))

    def test_null_data_is_empty(self):
        self.assertEqual(normalize_positions({"status": True, "data": None}), [])


class AngelOneHistoricalMappingTests(SimpleTestCase):
    def test_request_uses_ist_wall_clock_and_interval_map(self):
        start = datetime(2025, 1, 6, 3, 45, tzinfo=dt_timezone.utc)
        body = map_candle_request("3045", "15m", start, start + timedelta(hours=6))

        self.assertEqual(body["fromdate"], "2025-01-06 09:15")
        self.assertEqual(body["todate"], "2025-01-06 15:15")
        self.assertEqual(body["interval"], "FIFTEEN_MINUTE")
        self.assertEqual(map_candle_request("3045", "weird", start, start)["interval"], "FIVE_MINUTE")

    def test_candles_skip_malformed_rows(self):
        result = map_candles({"status": True, "data": [
            ["2025-01-06T09:15:00+05:30", 600, 605.5, 598, 603, 12000],
            ["bad-row"],
            ["not-a-date", 1, 2, 3, 4, 5],
        ]})

        self.assertTrue(result.ok)
        self.assertEqual(len(result.candles), 1)
        self.assertEqual(result.candles[0].high, Decimal("605.5"))
        self.assertEqual(result.candles[0].volume, 12000)

    def test_false_status_is_failed_result(self):
        result = map_candles({"status": False, "message": "Invalid symbol token"})
        self.assertFalse(result.ok)
        self.assertEqual(result.error, "Invalid symbol token")
        self.assertEqual(result.candles, [])

    def test_empty_range_is_ok(self):
        result = map_candles({"status": True, "data": []})
        self.assertTrue(result.ok)
        self.assertEqual(result.candles, [])


class AngelOneClientTests(SimpleTestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.vault = InMemoryVault({"acc-1": CREDS})
        self.tokens = TokenCache()
        self.client = AngelOneClient(
            config=AngelOneConfig(base_url="https://smartapi.test"),
            transport=AngelOneTransport(AngelOneConfig(base_url="https://smartapi.test"), session=self.session),
            vault=self.vault,
            token_cache=self.tokens,
        )

    def test_login_sends_static_headers_and_totp(self):
        self.session.request.return_value = _response(LOGIN_OK)

        token = self.client.authenticate("acc-1")

        self.assertEqual(token.access_token, "jwt-1")
        self.assertEqual(token.feed_token, "feed-1")
        self.assertEqual(token.ttl_seconds, 28800)

        call = self.session.request.call_args
        self.assertEqual(call.args[0], "POST")
        self.assertEqual(call.args[1], f"https://smartapi.test{LOGIN_PATH}")
        headers = call.kwargs["headers"]
        self.assertEqual(headers["X-UserType"], "USER")
        self.assertEqual(headers["X-SourceID"], "WEB")
        self.assertEqual(headers["X-MACAddress"], "00:00:00:00:00:00")
        self.assertEqual(headers["X-PrivateKey"], "smart-api-key")
        self.assertNotIn("Authorization", headers)
        body = call.kwargs["json"]
        self.assertEqual(body["clientcode"], "A123456")
        self.assertEqual(len(body["totp"]), 6)
        self.assertTrue(body["totp"].isdigit())

    def test_second_authenticate_reuses_cached_token(self):
        self.session.request.return_value = _response(LOGIN_OK)

        self.client.authenticate("acc-1")
        self.client.authenticate("acc-1")

        self.assertEqual(self.session.request.call_count, 1)

    def test_failed_login_caches_nothing(self):
        self.session.request.return_value = _response({"status": False, "message": "Invalid totp"}, status=401)

        with self.assertRaisesMessage(AuthenticationFailed, "Invalid totp"):
            self.client.authenticate("acc-1")
        self.assertIsNone(self.tokens.get("angelone", "acc-1"))

    def test_place_order_uses_bearer_token(self):
        self.session.request.side_effect = [
            _response(LOGIN_OK),
            _response({"status": True, "message": "SUCCESS", "data": {"orderid": "X1"}}),
        ]

        response = self.client.place_order("acc-1", _request())

        self.assertEqual(response.order_id, "X1")
        call = self.session.request.call_args
        self.assertEqual(call.args[1], f"https://smartapi.test{PLACE_ORDER_PATH}")
        self.assertEqual(call.kwargs["headers"]["Authorization"], "Bearer jwt-1")
        self.assertEqual(call.kwargs["json"]["tradingsymbol"], "RELIANCE-EQ")

    def test_rejected_session_drops_cached_token(self):
        self.session.request.side_effect = [_response(LOGIN_OK), _response(None, status=401)]

        with self.assertRaises(TransportError):
            self.client.get_positions("acc-1")
        self.assertIsNone(self.tokens.get("angelone", "acc-1"))

    def test_invalid_token_body_drops_cached_token_and_next_call_logs_in(self):
        invalid_token = {"status": False, "message": "Invalid Token", "errorcode": "AG8001", "data": None}
        self.session.request.side_effect = [
            _response(LOGIN_OK),
            _response(invalid_token, status=401),
            _response({**LOGIN_OK, "data": {**LOGIN_OK["data"], "jwtToken": "jwt-2"}}),
            _response({"status": True, "message": "SUCCESS", "data": {"orderid": "X2"}}),
        ]

        with self.assertRaisesMessage(VendorRejected, "Invalid Token"):
            self.client.place_order("acc-1", _request())
        self.assertIsNone(self.tokens.get("angelone", "acc-1"))

        response = self.client.place_order("acc-1", _request())

        self.assertEqual(response.order_id, "X2")
        login_calls = [c for c in self.session.request.call_args_list if c.args[1].endswith(LOGIN_PATH)]
        self.assertEqual(len(login_calls), 2)
        self.assertEqual(self.session.request.call_args.kwargs["headers"]["Authorization"], "Bearer jwt-2")

    def test_expired_token_with_http_200_drops_cached_token(self):
        self.session.request.side_effect = [
            _response(LOGIN_OK),
            _response({"status": False, "message": "Token Expired", "errorcode": "AG8002"}),
        ]

        result = self.client.get_historical_data(
            "acc-1", "3045", "5M", datetime(2025, 1, 6, 3, 45, tzinfo=dt_timezone.utc),
            datetime(2025, 1, 6, 4, 45, tzinfo=dt_timezone.utc),
        )

        self.assertFalse(result.ok)
        self.assertIsNone(self.tokens.get("angelone", "acc-1"))

    def test_order_rejection_keeps_cached_token(self):
        self.session.request.side_effect = [
            _response(LOGIN_OK),
            _response({"status": False, "message": "Insufficient funds", "errorcode": "AB1010"}),
        ]

        with self.assertRaises(VendorRejected):
            self.client.place_order("acc-1", _request())
        self.assertEqual(self.tokens.get("angelone", "acc-1").access_token, "jwt-1")

    def test_historical_transport_failure_is_failed_result(self):
        self.session.request.side_effect = [_response(LOGIN_OK), requests.ConnectionError("reset")]
        start = datetime(2025, 1, 6, 3, 45, tzinfo=dt_timezone.utc)

        result = self.client.get_historical_data("acc-1", "3045", "5M", start, start + timedelta(hours=1))

        self.assertFalse(result.ok)
        self.assertIn("reset", result.error)

    def test_validate_credentials_false_paths(self):
        self.assertFalse(self.client.validate_credentials({"clientCode": "A1"}))
        self.assertFalse(self.client.validate_credentials({**CREDS, "totpKey": "not base32!"}))

        self.session.request.side_effect = requests.Timeout("slow")
        self.assertFalse(self.client.validate_credentials(CREDS))
        self.assertEqual(self.tokens.get("angelone", "acc-1"), None)

    def test_validate_credentials_true_on_login(self):
        self.session.request.return_value = _response(LOGIN_OK)
        self.assertTrue(self.client.validate_credentials(CREDS))

    def test_capabilities(self):
        self.assertTrue(self.client.supports(BrokerCapability.HISTORICAL_DATA))
        self.assertFalse(self.client.supports(BrokerCapability.MARKET_DATA_STREAM))
