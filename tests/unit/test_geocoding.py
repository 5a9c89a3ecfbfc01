"""
Unit tests for the Nominatim geocoding client
"""

import unittest
from unittest.mock import MagicMock

import requests

from parkeazy.infrastructure.geocoding import (
    UNAVAILABLE_LOCATION, UNKNOWN_LOCATION, NominatimGeocoder
)


GEC_HIT = {
    'display_name': "GEC Circle, Chittagong, Bangladesh",
    'lat': "22.3590",
    'lon': "91.8210",
    'type': "junction",
    'address': {'city': "Chittagong"},
}


class FakeClock:

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestNominatimGeocoder(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.session.headers = {}
        self.response = self.session.get.return_value
        self.response.json.return_value = [GEC_HIT]
        self.clock = FakeClock()
        self.geocoder = NominatimGeocoder(session=self.session, clock=self.clock, sleep=self.clock.sleep)

    def test_sets_user_agent(self):
        self.assertEqual(self.session.headers['User-Agent'], "Park-Eazy-App/1.0")

    def test_search(self):
        results = self.geocoder.search("GEC Circle")
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].name, "GEC Circle")
        self.assertEqual((results[0].lat, results[0].lon), (22.359, 91.821))

        url = self.session.get.call_args.args[0]
        params = self.session.get.call_args.kwargs['params']
        self.assertTrue(url.endswith("/search"))
        self.assertEqual(params['countrycodes'], "bd")
        self.assertNotIn('viewbox', params)

    def test_viewbox_bounds_results(self):
        self.geocoder.search("GEC", viewbox=(91.7, 22.4, 91.9, 22.3))
        params = self.session.get.call_args.kwargs['params']
        self.assertEqual(params['viewbox'], "91.7,22.4,91.9,22.3")
        self.assertEqual(params['bounded'], "1")

    def test_blank_query(self):
        self.assertEqual(self.geocoder.search("   "), [])
        self.session.get.assert_not_called()

    def test_results_are_cached(self):
        self.geocoder.search("GEC Circle")
        self.geocoder.search("GEC Circle")
        self.assertEqual(self.session.get.call_count, 1)
        self.geocoder.clear_cache()
        self.geocoder.search("GEC Circle")
        self.assertEqual(self.session.get.call_count, 2)

    def test_network_error_gives_no_results(self):
        self.session.get.side_effect = requests.ConnectionError("offline")
        self.assertEqual(self.geocoder.search("GEC Circle"), [])

    def test_failures_are_not_cached(self):
        self.session.get.side_effect = [requests.Timeout("slow"), self.response]
        self.assertEqual(self.geocoder.search("GEC Circle"), [])
        self.assertEqual(len(self.geocoder.search("GEC Circle")), 1)

    def test_requests_are_spaced(self):
        self.geocoder.search("first")
        self.clock.now += 0.25
        self.geocoder.search("second")
        self.assertEqual(self.clock.sleeps, [0.75])

    def test_reverse(self):
        self.response.json.return_value = {'display_name': "GEC Circle, Chittagong"}
        self.assertEqual(self.geocoder.reverse(22.359, 91.821), "GEC Circle, Chittagong")

    def test_reverse_without_name(self):
        self.response.json.return_value = {}
        self.assertEqual(self.geocoder.reverse(0, 0), UNKNOWN_LOCATION)

    def test_reverse_with_list_payload(self):
        self.response.json.return_value = [GEC_HIT]
        with self.assertLogs('NominatimGeocoder', level='WARNING'):
            self.assertEqual(self.geocoder.reverse(22.359, 91.821), UNKNOWN_LOCATION)

    def test_search_with_object_payload(self):
        self.response.json.return_value = {'error': "Unable to geocode"}
        self.assertEqual(self.geocoder.search("GEC Circle"), [])

    def test_reverse_error(self):
        self.response.raise_for_status.side_effect = requests.HTTPError("503")
        self.assertEqual(self.geocoder.reverse(22.359, 91.821), UNAVAILABLE_LOCATION)


if __name__ == '__main__':
    unittest.main()
