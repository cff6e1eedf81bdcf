from datetime import datetime, timedelta

import pytest
import redis

from beacon.analytics.models import Event, utcnow
from beacon.db.exceptions import EventStoreUnavailableError
from beacon.db.models import Application

API_BASE_URL = "/api/v1/analytics"

def collect(client, headers, **overrides):
    body = {"event": "signup", "url": "https://example.com/join"}
    body.update(overrides)
    return client.post(f'{API_BASE_URL}/collect', json=body, headers=headers)

# --- Collect --- #

def test_collect_success(client, api_headers):
    response = collect(client, api_headers, visitor_id="v1", device="mobile", referrer="https://google.com/",
                       timestamp="2024-01-01T10:00:00Z", metadata={"browser": "firefox"})

    assert response.status_code == 201
    assert response.json['message'] == "Event recorded successfully"
    assert isinstance(response.json['event_id'], int)

def test_collect_accepts_aliases(client, api_headers):
    response = client.post(f'{API_BASE_URL}/collect', headers=api_headers, json={
        "event_name": "signup",
        "url": "https://example.com/",
        "ipAddress": "203.0.113.7"
    })
    assert response.status_code == 201

    stats = client.get(f'{API_BASE_URL}/user-stats?visitor_id=203.0.113.7', headers=api_headers)
    assert stats.json['total_events'] == 1

@pytest.mark.parametrize("body, field", [
    ({"url": "https://example.com/"}, "event"),
    ({"event": "signup"}, "url"),
    ({"event": "", "url": "https://example.com/"}, "event"),
])
def test_collect_missing_required_field(client, api_headers, body, field):
    response = client.post(f'{API_BASE_URL}/collect', json=body, headers=api_headers)
    assert response.status_code == 400
    assert response.json['field'] == field

def test_collect_invalid_timestamp(client, api_headers):
    response = collect(client, api_headers, timestamp="yesterday")
    assert response.status_code == 400
    assert response.json['field'] == "timestamp"

def test_collect_non_json_body(client, api_headers):
    response = client.post(f'{API_BASE_URL}/collect', data="event=signup", headers=api_headers)
    assert response.status_code == 400

def test_collect_store_unavailable_returns_503(app, client, api_headers, mocker):
    mocker.patch.object(app.event_store, 'append', side_effect=EventStoreUnavailableError())
    response = collect(client, api_headers)
    assert response.status_code == 503

# --- Authentication --- #

def test_missing_key_is_401_before_store_access(app, client, mocker):
    append = mocker.spy(app.event_store, 'append')
    query = mocker.spy(app.event_store, 'query')

    assert collect(client, {}).status_code == 401
    assert client.get(f'{API_BASE_URL}/event-summary?event=signup').status_code == 401
    append.assert_not_called()
    query.assert_not_called()

def test_unknown_key_is_401_before_store_access(app, client, mocker):
    append = mocker.spy(app.event_store, 'append')
    query = mocker.spy(app.event_store, 'query')
    headers = {'X-API-Key': 'bk_unknown'}

    assert collect(client, headers).status_code == 401
    assert client.get(f'{API_BASE_URL}/event-summary?event=signup', headers=headers).status_code == 401
    append.assert_not_called()
    query.assert_not_called()

def test_revoked_key_is_403_before_store_access(app, client, registered_app, api_headers, mocker):
    app_info, _ = registered_app
    app.identity_provider.revoke_application(app_info["app_id"])
    query = mocker.spy(app.event_store, 'query')

    response = client.get(f'{API_BASE_URL}/event-summary?event=signup', headers=api_headers)

    assert response.status_code == 403
    query.assert_not_called()

def test_expired_key_is_403(app, client, registered_app, api_headers):
    app_info, _ = registered_app
    with app.db_session_factory() as session:
        session.get(Application, app_info["app_id"]).expires_at = utcnow() - timedelta(seconds=1)
        session.commit()

    assert collect(client, api_headers).status_code == 403

@pytest.mark.parametrize("style", ["header", "authorization", "query"])
def test_key_presentation_styles(client, registered_app, style):
    _, api_key = registered_app
    url = f'{API_BASE_URL}/event-summary?event=signup'
    headers = {}
    if style == "header":
        headers['X-API-Key'] = api_key
    elif style == "authorization":
        headers['Authorization'] = f'ApiKey {api_key}'
    else:
        url += f'&api_key={api_key}'

    assert client.get(url, headers=headers).status_code == 200

# --- Event summary --- #

def test_ingest_then_summary_counts(client, api_headers):
    collect(client, api_headers, visitor_id="v1", device="mobile")
    first = client.get(f'{API_BASE_URL}/event-summary?event=signup', headers=api_headers)
    assert first.json['count'] == 1

    collect(client, api_headers, visitor_id="v2", device="desktop")
    second = client.get(f'{API_BASE_URL}/event-summary?event=signup', headers=api_headers)
    assert second.status_code == 200
    assert second.json == {
        "event_name": "signup",
        "count": 2,
        "unique_visitors": 2,
        "attribute_histogram": {"desktop": 1, "mobile": 1}
    }

def test_consecutive_summaries_are_identical(client, api_headers):
    collect(client, api_headers)
    url = f'{API_BASE_URL}/event-summary?event=signup'
    assert client.get(url, headers=api_headers).json == client.get(url, headers=api_headers).json

def test_summary_requires_event(client, api_headers):
    response = client.get(f'{API_BASE_URL}/event-summary', headers=api_headers)
    assert response.status_code == 400
    assert response.json['error'] == "event parameter is required"

def test_summary_date_range(client, api_headers):
    collect(client, api_headers, timestamp="2024-01-01T10:00:00Z")
    collect(client, api_headers, timestamp="2024-02-01T10:00:00Z")
    response = client.get(
        f'{API_BASE_URL}/event-summary?event=signup&start_date=2024-01-01&end_date=2024-01-31',
        headers=api_headers
    )
    assert response.json['count'] == 1

def test_summary_inverted_date_range(client, api_headers):
    response = client.get(
        f'{API_BASE_URL}/event-summary?event=signup&start_date=2024-02-01&end_date=2024-01-01',
        headers=api_headers
    )
    assert response.status_code == 400

def test_summary_app_id_override(app, client, registered_app, api_headers):
    app_info, _ = registered_app
    other_info, _ = app.identity_provider.register_application("Other", "https://o.example.com", "o@example.com")
    url = f'{API_BASE_URL}/event-summary?event=signup&app_id='

    assert client.get(url + str(app_info["app_id"]), headers=api_headers).status_code == 200
    assert client.get(url + str(other_info["app_id"]), headers=api_headers).status_code == 403
    assert client.get(url + "99999", headers=api_headers).status_code == 404
    assert client.get(url + "abc", headers=api_headers).status_code == 400

def test_summary_survives_redis_failure(app, client, api_headers, mocker):
    collect(client, api_headers)
    mocker.patch.object(app.redis_client, 'get', side_effect=redis.exceptions.ConnectionError("down"))
    mocker.patch.object(app.redis_client, 'setex', side_effect=redis.exceptions.ConnectionError("down"))
    mocker.patch.object(app.redis_client, 'pipeline', side_effect=redis.exceptions.ConnectionError("down"))

    response = client.get(f'{API_BASE_URL}/event-summary?event=signup', headers=api_headers)

    assert response.status_code == 200
    assert response.json['count'] == 1

def test_summary_store_unavailable_returns_503(app, client, api_headers, mocker):
    mocker.patch.object(app.event_store, 'query', side_effect=EventStoreUnavailableError())
    response = client.get(f'{API_BASE_URL}/event-summary?event=uncached', headers=api_headers)
    assert response.status_code == 503

# --- Isolation --- #

def test_events_of_one_application_never_leak_into_another(app, client, api_headers):
    _, other_key = app.identity_provider.register_application("Other", "https://o.example.com", "o@example.com")
    other_headers = {'X-API-Key': other_key}
    collect(client, api_headers, visitor_id="shared", device="mobile")

    summary = client.get(f'{API_BASE_URL}/event-summary?event=signup', headers=other_headers)
    stats = client.get(f'{API_BASE_URL}/user-stats?visitor_id=shared', headers=other_headers)
    series = client.get(f'{API_BASE_URL}/time-series?event=signup', headers=other_headers)
    devices = client.get(f'{API_BASE_URL}/breakdown-by-device', headers=other_headers)

    assert summary.json['count'] == 0
    assert stats.json['total_events'] == 0
    assert series.json['time_series'] == []
    assert devices.json['breakdown'] == []

# --- User stats --- #

def test_user_stats_unknown_visitor(client, api_headers):
    response = client.get(f'{API_BASE_URL}/user-stats?visitor_id=ghost', headers=api_headers)
    assert response.status_code == 200
    assert response.json['total_events'] == 0
    assert response.json['event_breakdown'] == {}

def test_user_stats_reflects_new_events(client, api_headers):
    collect(client, api_headers, event="page_view", visitor_id="v1", device="desktop",
            timestamp="2024-01-01T09:00:00Z", metadata={"browser": "chrome"})
    url = f'{API_BASE_URL}/user-stats?visitor_id=v1'
    assert client.get(url, headers=api_headers).json['total_events'] == 1

    collect(client, api_headers, event="signup", visitor_id="v1", device="mobile",
            timestamp="2024-01-01T10:00:00Z")
    stats = client.get(url, headers=api_headers).json

    assert stats['total_events'] == 2
    assert stats['event_breakdown'] == {"page_view": 1, "signup": 1}
    assert stats['last_seen_device'] == "mobile"
    assert stats['last_seen_attributes'] == {"browser": "chrome"}

def test_user_stats_requires_visitor(client, api_headers):
    assert client.get(f'{API_BASE_URL}/user-stats', headers=api_headers).status_code == 400

# --- Time series --- #

def test_time_series_day_bucket(client, api_headers):
    collect(client, api_headers, timestamp="2024-01-01T10:00:00Z", visitor_id="a")
    collect(client, api_headers, timestamp="2024-01-01T14:00:00Z", visitor_id="a")

    response = client.get(f'{API_BASE_URL}/time-series?event=signup&interval=day', headers=api_headers)

    assert response.status_code == 200
    assert response.json['time_series'] == [
        {"bucket_start": "2024-01-01T00:00:00", "count": 2, "unique_visitors": 1}
    ]

def test_time_series_capped_at_100_most_recent(app, client, registered_app, api_headers):
    app_info, _ = registered_app
    first_day = datetime(2023, 1, 1, 12, 0)
    for offset in range(150):
        app.event_store.append(Event(None, app_info["app_id"], "signup", "https://example.com/",
                                     first_day + timedelta(days=offset)))

    series = client.get(f'{API_BASE_URL}/time-series?event=signup', headers=api_headers).json['time_series']

    assert len(series) == 100
    assert series[0]['bucket_start'] == "2023-05-30T00:00:00"

def test_time_series_invalid_interval(client, api_headers):
    response = client.get(f'{API_BASE_URL}/time-series?event=signup&interval=minute', headers=api_headers)
    assert response.status_code == 400
    assert response.json['field'] == "interval"

def test_time_series_requires_event(client, api_headers):
    assert client.get(f'{API_BASE_URL}/time-series', headers=api_headers).status_code == 400

# --- Breakdowns --- #

def test_breakdown_endpoints(client, api_headers):
    collect(client, api_headers, device="mobile", referrer="https://google.com/", metadata={"browser": "safari"})
    collect(client, api_headers, device="mobile", url="https://example.com/pricing")
    collect(client, api_headers, device="desktop")

    devices = client.get(f'{API_BASE_URL}/breakdown-by-device', headers=api_headers).json
    browsers = client.get(f'{API_BASE_URL}/breakdown-by-browser', headers=api_headers).json
    urls = client.get(f'{API_BASE_URL}/breakdown-by-url', headers=api_headers).json
    referrers = client.get(f'{API_BASE_URL}/breakdown-by-referrer', headers=api_headers).json

    assert devices == {"dimension": "device", "breakdown": [
        {"value": "mobile", "count": 2}, {"value": "desktop", "count": 1}
    ]}
    assert browsers['breakdown'] == [{"value": "unknown", "count": 2}, {"value": "safari", "count": 1}]
    assert urls['breakdown'][0] == {"value": "https://example.com/join", "count": 2}
    assert referrers['breakdown'] == [{"value": "unknown", "count": 2}, {"value": "https://google.com/", "count": 1}]

# --- Rate limiting --- #

def test_collect_rate_limited(app, client, api_headers, monkeypatch):
    monkeypatch.setitem(app.config, 'COLLECT_RATE_LIMIT', 2)

    assert collect(client, api_headers).status_code == 201
    assert collect(client, api_headers).status_code == 201
    response = collect(client, api_headers)

    assert response.status_code == 429
    assert response.headers['Retry-After'] == "60"

def test_analytics_rate_limit_is_shared_across_query_endpoints(app, client, api_headers, monkeypatch):
    monkeypatch.setitem(app.config, 'ANALYTICS_RATE_LIMIT', 2)

    assert client.get(f'{API_BASE_URL}/event-summary?event=signup', headers=api_headers).status_code == 200
    assert client.get(f'{API_BASE_URL}/user-stats?visitor_id=v1', headers=api_headers).status_code == 200
    assert client.get(f'{API_BASE_URL}/breakdown-by-url', headers=api_headers).status_code == 429
