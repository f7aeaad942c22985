"""Run a point analysis from the command line and print the JSON result."""
import argparse
import json
import logging
import sys

from mapia import config
from mapia.analysis import InvalidRequest, run_analysis
from mapia.geocoding import GeocodeNotFound
from mapia.http import UpstreamError


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("address", nargs="?", help="address to geocode (ignored for coordinates when --lat/--lon are given)")
    parser.add_argument("--lat", type=float)
    parser.add_argument("--lon", type=float)
    parser.add_argument("--efas-layer", help="Copernicus EFAS layer name to query as well")
    parser.add_argument("--efas-time", help="TIME value for the EFAS layer")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.log_level(), stream=sys.stderr)

    body = {"address": args.address, "lat": args.lat, "lon": args.lon,
            "efas_layer": args.efas_layer, "efas_time": args.efas_time}
    try:
        result = run_analysis(body)
    except (InvalidRequest, GeocodeNotFound) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except UpstreamError as e:
        print(f"error: geocoding failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
