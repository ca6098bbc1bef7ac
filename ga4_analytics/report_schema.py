"""
Named layouts for GA4 report requests and decoding of GA4 response rows.

Every transform reads rows through a ReportLayout instead of raw positional
indexes, so the request config and the decoder share one declared column order.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Sequence, Tuple

from .platforms import get_llm_filter_regex

logger = logging.getLogger(__name__)

CONVERSION_PLACEHOLDER = '{conversion}'
DEFAULT_CONVERSION_EVENT = 'conversions'
DEFAULT_REPORT_LIMIT = 10000

# LLM traffic is matched on the referrer first, then on the session source
LLM_FILTER_FIELDS = ('sessionSource', 'pageReferrer')

# Plural aliases used in the dashboard settings -> GA4 event names
CONVERSION_EVENT_ALIASES = {
    'purchases': 'purchase',
    'addToCarts': 'add_to_cart',
    'beginCheckouts': 'begin_checkout',
    'viewItems': 'view_item',
    'searches': 'search',
    'logins': 'login',
    'signUps': 'sign_up',
    'generateLeads': 'generate_lead',
}

TRAFFIC_DIMENSIONS = (
    ('source', 'sessionSource'),
    ('medium', 'sessionMedium'),
    ('referrer', 'pageReferrer'),
)

# The conversion metric always sits at index 2
STANDARD_METRICS = (
    ('sessions', 'sessions'),
    ('engagement_rate', 'engagementRate'),
    ('conversions', CONVERSION_PLACEHOLDER),
    ('bounce_rate', 'bounceRate'),
    ('avg_session_duration', 'averageSessionDuration'),
    ('pages_per_session', 'screenPageViewsPerSession'),
    ('new_users', 'newUsers'),
    ('total_users', 'totalUsers'),
)


@dataclass(frozen=True)
class ReportLayout:
    """Declared dimension and metric order of one GA4 report."""
    name: str
    dimensions: Tuple[Tuple[str, str], ...] = ()
    metrics: Tuple[Tuple[str, str], ...] = ()

    def with_conversion_metric(self, metric_name: str) -> 'ReportLayout':
        metrics = tuple(
            (field_name, metric_name if api_name == CONVERSION_PLACEHOLDER else api_name)
            for field_name, api_name in self.metrics
        )
        return ReportLayout(self.name, self.dimensions, metrics)

    @property
    def dimension_names(self) -> List[str]:
        return [api_name for _, api_name in self.dimensions]

    @property
    def metric_names(self) -> List[str]:
        return [api_name for _, api_name in self.metrics]


@dataclass(frozen=True)
class DecodedRow:
    dimensions: Dict[str, str] = field(default_factory=dict)
    metrics: Dict[str, float] = field(default_factory=dict)

    def dim(self, name: str) -> str:
        return self.dimensions.get(name, '')

    def metric(self, name: str) -> float:
        return self.metrics.get(name, 0.0)


PLATFORM_LAYOUT = ReportLayout('platform', TRAFFIC_DIMENSIONS, STANDARD_METRICS)

GEO_LAYOUT = ReportLayout('geo', (('country', 'country'),) + TRAFFIC_DIMENSIONS, STANDARD_METRICS)

DEVICE_LAYOUT = ReportLayout(
    'device',
    (('device', 'deviceCategory'), ('os', 'operatingSystem'), ('browser', 'browser')) + TRAFFIC_DIMENSIONS,
    STANDARD_METRICS,
)

PAGES_LAYOUT = ReportLayout(
    'pages',
    (('page_path', 'pagePath'), ('page_title', 'pageTitle')) + TRAFFIC_DIMENSIONS,
    STANDARD_METRICS,
)

TREND_LAYOUT = ReportLayout(
    'trend',
    (('date', 'date'), ('source', 'sessionSource'), ('medium', 'sessionMedium')),
    (('sessions', 'sessions'),),
)

TOTALS_LAYOUT = ReportLayout(
    'totals',
    (),
    (
        ('sessions', 'sessions'),
        ('total_users', 'totalUsers'),
        ('page_views', 'screenPageViews'),
        ('avg_session_duration', 'averageSessionDuration'),
    ),
)


def get_conversion_event_metric(conversion_event: Optional[str]) -> str:
    """
    Convert a conversion event name into a valid GA4 metric name.

    GA4 accepts the built-in 'conversions' metric or 'keyEvents:<event>' for
    key events; event names are singular in GA4.
    """
    if not conversion_event or conversion_event == DEFAULT_CONVERSION_EVENT:
        return DEFAULT_CONVERSION_EVENT
    if conversion_event.startswith('keyEvents:'):
        return conversion_event
    event_name = CONVERSION_EVENT_ALIASES.get(conversion_event, conversion_event)
    return f'keyEvents:{event_name}'


def parse_metric_value(value: Any) -> float:
    """Parse a GA4 string-encoded metric value; anything unusable becomes 0.0."""
    if value is None or value == '':
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _cell_value(cells: List[Dict[str, Any]], index: Optional[int]) -> Any:
    if index is None or index >= len(cells):
        return None
    cell = cells[index] or {}
    return cell.get('value')


def _resolve_indexes(declared: Tuple[Tuple[str, str], ...],
                     headers: Optional[List[Dict[str, Any]]],
                     kind: str,
                     layout_name: str) -> Dict[str, Optional[int]]:
    """Map each field to its column, by header name when headers are present."""
    positional = {field_name: idx for idx, (field_name, _) in enumerate(declared)}
    if not headers:
        return positional

    header_names = [(h or {}).get('name') for h in headers]
    indexes: Dict[str, Optional[int]] = {}
    drifted = []
    for idx, (field_name, api_name) in enumerate(declared):
        if api_name == CONVERSION_PLACEHOLDER:
            # Selected conversion metric, fixed position
            indexes[field_name] = idx
        elif api_name in header_names:
            found = header_names.index(api_name)
            indexes[field_name] = found
            if found != idx:
                drifted.append(api_name)
        else:
            indexes[field_name] = idx if idx < len(header_names) else None
            drifted.append(api_name)
    if drifted:
        logger.warning(f"[{layout_name}] {kind} headers differ from declared layout for {drifted}; "
                       f"response headers: {header_names}")
    return indexes


def decode_rows(response: Optional[Dict[str, Any]], layout: ReportLayout) -> List[DecodedRow]:
    """
    Decode the rows of a GA4 runReport response into named rows.

    Args:
        response: GA4 response dict ({'rows': [...], 'metricHeaders': [...], ...}); may be None
        layout: Layout the report was requested with

    Returns:
        List of DecodedRow; missing dimensions decode as '' and missing metrics as 0.0
    """
    if not response:
        return []
    rows = response.get('rows') or []
    if not rows:
        return []

    dim_idx = _resolve_indexes(layout.dimensions, response.get('dimensionHeaders'), 'dimension', layout.name)
    metric_idx = _resolve_indexes(layout.metrics, response.get('metricHeaders'), 'metric', layout.name)

    decoded = []
    for row in rows:
        dimension_cells = row.get('dimensionValues') or []
        metric_cells = row.get('metricValues') or []
        dimensions = {}
        for field_name, _ in layout.dimensions:
            value = _cell_value(dimension_cells, dim_idx[field_name])
            dimensions[field_name] = value if isinstance(value, str) else ''
        metrics = {
            field_name: parse_metric_value(_cell_value(metric_cells, metric_idx[field_name]))
            for field_name, _ in layout.metrics
        }
        decoded.append(DecodedRow(dimensions, metrics))
    return decoded


def _llm_string_filter(field_name: str) -> Dict[str, Any]:
    return {
        'filter': {
            'fieldName': field_name,
            'stringFilter': {
                'matchType': 'PARTIAL_REGEXP',
                'value': get_llm_filter_regex(),
                'caseSensitive': False,
            },
        }
    }


def build_report_config(layout: ReportLayout,
                        start_date: str,
                        end_date: str,
                        conversion_event: Optional[str] = DEFAULT_CONVERSION_EVENT,
                        limit: int = DEFAULT_REPORT_LIMIT,
                        llm_filter_fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """
    Build a GA4 runReport request body for a layout.

    Args:
        layout: Report layout (dimension and metric order)
        start_date: GA4 start date expression
        end_date: GA4 end date expression
        conversion_event: Conversion event selected in the dashboard
        limit: Row limit
        llm_filter_fields: Dimensions to restrict to LLM traffic with a PARTIAL_REGEXP
            filter; several fields are combined with OR

    Returns:
        Request body in GA4 REST JSON shape
    """
    resolved = layout.with_conversion_metric(get_conversion_event_metric(conversion_event))
    config: Dict[str, Any] = {
        'dateRanges': [{'startDate': start_date, 'endDate': end_date}],
        'dimensions': [{'name': name} for name in resolved.dimension_names],
        'metrics': [{'name': name} for name in resolved.metric_names],
        'keepEmptyRows': False,
        'limit': limit,
    }
    if llm_filter_fields:
        expressions = [_llm_string_filter(name) for name in llm_filter_fields]
        if len(expressions) == 1:
            config['dimensionFilter'] = expressions[0]
        else:
            config['dimensionFilter'] = {'orGroup': {'expressions': expressions}}
    return config


def with_date_range(config: Dict[str, Any], start_date: str, end_date: str) -> Dict[str, Any]:
    """Copy of a report config for another date window."""
    return {**config, 'dateRanges': [{'startDate': start_date, 'endDate': end_date}]}
