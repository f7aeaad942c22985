import json
import unittest
from unittest import mock
from urllib.parse import parse_qs, urlsplit

from mapia import efas, flood, wms
from mapia.http import UpstreamError


def query_of(url):
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query, keep_blank_values=True).items()}


class TestQ100FeatureInfo(unittest.TestCase):
    def test_inside_with_layer_and_note(self):
        seen_urls = []

        def fake_fetch(url, headers=None):
            seen_urls.append(url)
            return 200, "application/json", json.dumps({"features": [{"id": "zi.1"}]})

        with mock.patch("mapia.wms.fetch_text", side_effect=fake_fetch):
            out = flood.q100_feature_info(40.0, -3.0)

        self.assertTrue(out["inside"])
        self.assertEqual(out["feature_count"], 1)
        self.assertEqual(out["layer"], "NZ.RiskZone")
        self.assertEqual(out["attempt"], "1.3.0 application/json")
        self.assertNotIn("feature_info", out)
        self.assertIn("Q100", out["note"])

        q = query_of(seen_urls[0])
        self.assertTrue(seen_urls[0].startswith("https://wms.mapama.gob.es/sig/agua/ZI_LaminasQ100?"))
        self.assertEqual(q["query_layers"], "NZ.RiskZone")
        min_lat = float(q["bbox"].split(",")[0])
        self.assertAlmostEqual(min_lat, 40.0 - 0.0007)

    def test_unavailable_propagates(self):
        with mock.patch("mapia.wms.fetch_text", return_value=(502, "text/html", "bad gateway")):
            with self.assertRaises(wms.FeatureInfoUnavailable) as ctx:
                flood.q100_feature_info(40.0, -3.0)
        # five info formats, two WMS versions each
        self.assertEqual(len(ctx.exception.debug), 10)


class TestIdeeFloodInfo(unittest.TestCase):
    CAPS = "<WMS><Layer><Name>OI.Orthoimage</Name></Layer><Layer><Name>NZ.ZonasInundables</Name></Layer></WMS>"

    def test_pick_flood_layer(self):
        self.assertEqual(flood.pick_flood_layer(["OI.Orthoimage", "NZ.ZonasInundables"]), "NZ.ZonasInundables")
        self.assertEqual(flood.pick_flood_layer(["OI.Orthoimage", "Base"]), "OI.Orthoimage")
        self.assertIsNone(flood.pick_flood_layer([]))

    def test_json_feature_info(self):
        calls = []

        def fake_fetch(url, headers=None, timeout=None):
            calls.append(url)
            if "GetCapabilities" in url:
                return 200, "text/xml", self.CAPS
            return 200, "application/json", '{"type": "FeatureCollection", "features": []}'

        with mock.patch("mapia.flood.fetch_text", side_effect=fake_fetch):
            result = flood.idee_flood_info(40.0, -3.0)

        self.assertTrue(result["ok"])
        self.assertEqual(result["data"]["layer_used"], "NZ.ZonasInundables")
        self.assertEqual(result["data"]["feature_info"], {"type": "FeatureCollection", "features": []})

        q = query_of(calls[1])
        self.assertEqual(q["CRS"], "EPSG:3857")
        self.assertEqual((q["WIDTH"], q["I"], q["J"]), ("101", "50", "50"))
        minx, miny, maxx, maxy = map(float, q["BBOX"].split(","))
        self.assertAlmostEqual(maxx - minx, 500.0, places=3)
        self.assertAlmostEqual(maxy - miny, 500.0, places=3)

    def test_non_json_answer_keeps_snippet(self):
        responses = [(200, "text/xml", self.CAPS), (200, "text/html", "<html>" + "x" * 1000 + "</html>")]
        with mock.patch("mapia.flood.fetch_text", side_effect=lambda *a, **k: responses.pop(0)):
            result = flood.idee_flood_info(40.0, -3.0)
        self.assertTrue(result["ok"])
        self.assertEqual(len(result["data"]["raw_text_snippet"]), 600)
        self.assertEqual(len(result["limitations"]), 1)

    def test_no_layers_detected(self):
        with mock.patch("mapia.flood.fetch_text", return_value=(200, "text/xml", "<WMS/>")):
            result = flood.idee_flood_info(40.0, -3.0)
        self.assertTrue(result["ok"])
        self.assertNotIn("layer_used", result["data"])
        self.assertEqual(result["limitations"], ["No layers could be detected from GetCapabilities."])

    def test_feature_info_error_becomes_limitation(self):
        responses = [(200, "text/xml", self.CAPS), UpstreamError("request failed: reset")]

        def fake_fetch(*args, **kwargs):
            item = responses.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        with mock.patch("mapia.flood.fetch_text", side_effect=fake_fetch):
            result = flood.idee_flood_info(40.0, -3.0)
        self.assertTrue(result["ok"])
        self.assertEqual(result["limitations"], ["request failed: reset"])

    def test_capabilities_failure_is_not_ok(self):
        with mock.patch("mapia.flood.fetch_text", return_value=(503, "text/html", "down")):
            result = flood.idee_flood_info(40.0, -3.0)
        self.assertFalse(result["ok"])
        self.assertIn("503", result["error"])


class TestEfas(unittest.TestCase):
    CAPS = """<WMS_Capabilities><Capability><Layer queryable="1"><Name>FloodAlerts</Name><Title>Alerts</Title>
    <Dimension name="time">2026-03-01T00:00:00Z/2026-03-05T00:00:00Z/PT24H</Dimension></Layer></Capability></WMS_Capabilities>"""

    def test_capabilities(self):
        with mock.patch("mapia.efas.fetch_text", return_value=(200, "text/xml", self.CAPS)) as fetch:
            out = efas.efas_capabilities("FloodAlerts")
        self.assertTrue(out["ok"])
        self.assertEqual(out["selected_layer"], "FloodAlerts")
        self.assertEqual(out["layers"], [{"name": "FloodAlerts", "title": "Alerts", "abstract": None, "queryable": True}])
        self.assertEqual(out["default_time"], "2026-03-05T00:00:00Z")
        self.assertIn("REQUEST=GetCapabilities", fetch.call_args.args[0])

    def test_capabilities_http_error(self):
        with mock.patch("mapia.efas.fetch_text", return_value=(500, "text/plain", "oops")):
            with self.assertRaises(UpstreamError) as ctx:
                efas.efas_capabilities()
        self.assertEqual(ctx.exception.status, 500)

    def test_feature_info_outside_adds_regional_limitation(self):
        urls = []

        def fake_fetch(url, headers=None):
            urls.append(url)
            return 200, "text/plain", "Feature count: 0"

        with mock.patch("mapia.wms.fetch_text", side_effect=fake_fetch):
            result = efas.efas_feature_info(45.0, 7.0, "FloodAlerts", time="2026-03-05T00:00:00Z")

        self.assertTrue(result["ok"])
        self.assertFalse(result["data"]["inside"])
        self.assertEqual(result["data"]["time"], "2026-03-05T00:00:00Z")
        self.assertEqual(len(result["limitations"]), 1)
        self.assertIn("Layer: FloodAlerts | Attempt: 1.3.0 application/json", result["source"]["note"])
        q = query_of(urls[0])
        self.assertEqual(q["time"], "2026-03-05T00:00:00Z")
        self.assertAlmostEqual(float(q["bbox"].split(",")[0]), 45.0 - 0.0009)

    def test_feature_info_inside_has_no_limitation(self):
        with mock.patch("mapia.wms.fetch_text",
                        return_value=(200, "application/json", '{"features": [{"properties": {"alert": 2}}]}')):
            result = efas.efas_feature_info(45.0, 7.0, "FloodAlerts")
        self.assertTrue(result["data"]["inside"])
        self.assertEqual(result["limitations"], [])
        self.assertIsNone(result["data"]["raw_text_snippet"])
        self.assertEqual(result["data"]["note"], "EFAS returns information for this point (GetFeatureInfo).")

    def test_textual_answer_has_its_own_note(self):
        cases = [
            ("alert_level = 2", True, "EFAS returns a textual answer for this point (GetFeatureInfo)."),
            ("Feature count: 0", False, "EFAS returns no matches for this point."),
        ]
        for text, inside, note in cases:
            with self.subTest(text=text):
                with mock.patch("mapia.wms.fetch_text", return_value=(200, "text/plain", text)):
                    result = efas.efas_feature_info(45.0, 7.0, "FloodAlerts")
                self.assertEqual(result["data"]["inside"], inside)
                self.assertEqual(result["data"]["raw_text_snippet"], text)
                self.assertEqual(result["data"]["note"], note)

    def test_json_without_features_note(self):
        with mock.patch("mapia.wms.fetch_text", return_value=(200, "application/json", '{"features": []}')):
            result = efas.efas_feature_info(45.0, 7.0, "FloodAlerts")
        self.assertFalse(result["data"]["inside"])
        self.assertEqual(result["data"]["note"], "EFAS returns no entities for this point.")


if __name__ == "__main__":
    unittest.main()
