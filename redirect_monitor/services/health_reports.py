"""Read-only views over the validation cache for the monitoring API."""
from ..utils import isoformat_or_none, utc_now


def validation_report(results, include_unhealthy=False):
    unhealthy = [result for result in results if not result.is_healthy]
    payload = {
        'results': [result.to_dict() for result in results],
        'timestamp': utc_now().isoformat(),
        'hasIssues': bool(unhealthy),
    }
    if include_unhealthy:
        payload['unhealthy'] = [result.to_dict() for result in unhealthy]
    return payload


def status_report(cache):
    results = cache.get_all()
    unhealthy = [result for result in results if not result.is_healthy]
    return {
        'results': [result.to_dict() for result in results],
        'unhealthy': [result.to_dict() for result in unhealthy],
        'hasIssues': bool(unhealthy),
        'lastUpdated': isoformat_or_none(results[0].last_checked) if results else None,
    }


def route_status(cache, path):
    result = cache.get_by_path(path)
    return result.to_dict() if result is not None else None


def health_percentage(healthy_count, total):
    if total <= 0:
        return 0
    # Halves round up.
    return int(healthy_count * 100 / total + 0.5)


def dashboard_report(cache, include_history=False):
    results = cache.get_all()
    healthy = [result for result in results if result.is_healthy]
    unhealthy = [result for result in results if not result.is_healthy]

    routes = []
    for result in results:
        item = {
            'path': result.route,
            'destination': result.destination,
            'status': result.status,
            'isHealthy': result.is_healthy,
            'error': result.error,
            'lastChecked': isoformat_or_none(result.last_checked),
        }
        if include_history:
            item['history'] = [
                {
                    'status': entry.status,
                    'isHealthy': entry.is_healthy,
                    'error': entry.error,
                    'lastChecked': isoformat_or_none(entry.last_checked),
                }
                for entry in cache.get_history(result.route)
            ]
        routes.append(item)

    return {
        'summary': {
            'total': len(results),
            'healthy': len(healthy),
            'unhealthy': len(unhealthy),
            'healthPercentage': health_percentage(len(healthy), len(results)),
        },
        'routes': routes,
        'unhealthyList': [
            {
                'path': result.route,
                'destination': result.destination,
                'error': result.error,
                'status': result.status,
            }
            for result in unhealthy
        ],
    }
