import pytest

from ga4_analytics.session_quality import classify_content_group, compute_sqs


def test_sqs_all_components_maxed():
    assert compute_sqs(100.0, 100.0, 5.0, 300.0) == 100.0


def test_sqs_components_are_capped():
    assert compute_sqs(100.0, 100.0, 12.0, 3600.0) == 100.0


def test_sqs_zero():
    assert compute_sqs(0.0, 0.0, 0.0, 0.0) == 0.0


def test_sqs_partial_score():
    # 60% * 0.4 + 10% * 0.3 + 2 pages * 4 + 1.5 minutes * 2
    assert compute_sqs(60.0, 10.0, 2.0, 90.0) == 38.0


def test_sqs_bounce_rate_has_no_weight():
    assert compute_sqs(50.0, 5.0, 3.0, 120.0, bounce_rate=90.0) == compute_sqs(50.0, 5.0, 3.0, 120.0)


@pytest.mark.parametrize("engagement, conversion, pages, duration", [
    (0.0, 0.0, 0.0, 0.0),
    (100.0, 0.0, 1.0, 30.0),
    (35.5, 2.25, 1.7, 45.0),
    (100.0, 100.0, 100.0, 100000.0),
    (-10.0, 0.0, 0.0, 0.0),
])
def test_sqs_bounds(engagement, conversion, pages, duration):
    score = compute_sqs(engagement, conversion, pages, duration)
    assert 0.0 <= score <= 100.0


@pytest.mark.parametrize("path, expected", [
    ('/', 'Home'),
    ('', 'Home'),
    ('/?utm_source=chatgpt.com', 'Home'),
    ('/blog/how-to', 'Blog'),
    ('/docs', 'Docs'),
    ('/pricing', 'Pricing'),
    ('/products/widget', 'Product'),
    ('/help/faq', 'Support'),
    ('/about', 'Other'),
    ('/blogger', 'Other'),
])
def test_classify_content_group(path, expected):
    assert classify_content_group(path) == expected
