"""
Google Analytics 4 (GA4) Data API client initialization using service account.
"""
import os
import logging
from typing import Dict, Any, Optional

from google.analytics.data import BetaAnalyticsDataClient
from google.analytics.data_v1beta.types import (
    DateRange,
    Dimension,
    Filter,
    FilterExpression,
    FilterExpressionList,
    Metric,
    RunReportRequest,
)
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

ANALYTICS_SCOPE = 'https://www.googleapis.com/auth/analytics.readonly'
ADMIN_API_URL = 'https://analyticsadmin.googleapis.com/v1beta/properties/{property_id}/dataStreams'
ADMIN_API_TIMEOUT = 30


def _load_credentials(scopes=None):
    creds_path = os.getenv('GA4_CREDENTIALS_JSON')
    if not creds_path or not os.path.isfile(creds_path):
        raise EnvironmentError('GA4_CREDENTIALS_JSON not set or file does not exist')
    return service_account.Credentials.from_service_account_file(creds_path, scopes=scopes)


def resolve_property_id(property_id: Optional[str] = None) -> str:
    property_id = property_id or os.getenv('GA4_PROPERTY_ID')
    if not property_id:
        raise EnvironmentError('GA4_PROPERTY_ID not set')
    return str(property_id)


def init_ga4_client():
    """
    Initialize GA4 Data API client using service account credentials.
    Expects GA4_CREDENTIALS_JSON in environment pointing to JSON key file.
    """
    client = BetaAnalyticsDataClient(credentials=_load_credentials())
    return client


def _build_dimension_filter(dimension_filter: Dict[str, Any]) -> FilterExpression:
    if 'orGroup' in dimension_filter:
        return FilterExpression(
            or_group=FilterExpressionList(
                expressions=[_build_dimension_filter(e) for e in dimension_filter['orGroup']['expressions']]
            )
        )
    expression = dimension_filter['filter']
    string_filter = expression['stringFilter']
    return FilterExpression(
        filter=Filter(
            field_name=expression['fieldName'],
            string_filter=Filter.StringFilter(
                match_type=Filter.StringFilter.MatchType[string_filter.get('matchType', 'EXACT')],
                value=string_filter['value'],
                case_sensitive=string_filter.get('caseSensitive', False),
            ),
        )
    )


def build_run_report_request(report_config: Dict[str, Any], property_id: str) -> RunReportRequest:
    """
    Convert a report config in GA4 REST JSON shape into a RunReportRequest.
    """
    request = RunReportRequest(
        property=f'properties/{property_id}',
        date_ranges=[
            DateRange(start_date=r['startDate'], end_date=r['endDate'])
            for r in report_config.get('dateRanges', [])
        ],
        dimensions=[Dimension(name=d['name']) for d in report_config.get('dimensions', [])],
        metrics=[Metric(name=m['name']) for m in report_config.get('metrics', [])],
        keep_empty_rows=report_config.get('keepEmptyRows', False),
    )
    if report_config.get('limit'):
        request.limit = report_config['limit']
    if report_config.get('dimensionFilter'):
        request.dimension_filter = _build_dimension_filter(report_config['dimensionFilter'])
    return request


def response_to_dict(response) -> Dict[str, Any]:
    """RunReportResponse -> {'rows', 'dimensionHeaders', 'metricHeaders', 'rowCount'}."""
    rows = []
    for row in response.rows:
        rows.append({
            'dimensionValues': [{'value': val.value} for val in row.dimension_values],
            'metricValues': [{'value': val.value} for val in row.metric_values],
        })
    return {
        'rows': rows,
        'dimensionHeaders': [{'name': h.name} for h in response.dimension_headers],
        'metricHeaders': [{'name': h.name} for h in response.metric_headers],
        'rowCount': response.row_count,
    }


def run_ga4_report(report_config: Dict[str, Any], property_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Выполнить запрос RunReport к GA4 Data API.

    Args:
        report_config: тело запроса в формате GA4 REST (dateRanges, dimensions, metrics, ...)
        property_id: GA4 property; по умолчанию GA4_PROPERTY_ID из окружения

    Returns:
        Ответ в JSON-формате GA4: rows, dimensionHeaders, metricHeaders, rowCount
    """
    property_id = resolve_property_id(property_id)
    client = init_ga4_client()
    request = build_run_report_request(report_config, property_id)

    try:
        response = client.run_report(request=request)
    except Exception as e:
        logger.error(f"GA4 runReport failed for property {property_id}: {e}")
        raise

    result = response_to_dict(response)
    logger.info(f"GA4 report for property {property_id}: {len(result['rows'])} rows")
    return result


def fetch_property_default_uri(property_id: Optional[str] = None) -> Optional[str]:
    """
    Site URL of the property: defaultUri of its first web data stream.

    Returns None when the Admin API cannot be reached or the property has no web stream.
    """
    try:
        property_id = resolve_property_id(property_id)
        session = AuthorizedSession(_load_credentials(scopes=[ANALYTICS_SCOPE]))
        response = session.get(ADMIN_API_URL.format(property_id=property_id), timeout=ADMIN_API_TIMEOUT)
        response.raise_for_status()
        streams = response.json().get('dataStreams', [])
    except Exception as e:
        logger.warning(f"Could not fetch data streams for property {property_id}: {e}")
        return None

    for stream in streams:
        uri = (stream.get('webStreamData') or {}).get('defaultUri')
        if uri:
            return uri
    logger.warning(f"No web data stream with defaultUri for property {property_id}")
    return None


if __name__ == '__main__':
    client = init_ga4_client()
    print('GA4 client initialized:', client)
