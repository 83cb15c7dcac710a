from unittest.mock import Mock

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from halo.server import FilteringSpanExporter


def _span(name, event_type=None):
    attributes = {"asgi.event.type": event_type} if event_type else {}
    return ReadableSpan(name=name, attributes=attributes)


class TestFilteringSpanExporter:
    def setup_method(self):
        self.inner = Mock(spec=SpanExporter)
        self.inner.export.return_value = SpanExportResult.SUCCESS
        self.exporter = FilteringSpanExporter(self.inner)

    def test_drops_response_body_spans(self):
        request_span = _span("GET /light", "http.request")
        body_span = _span("GET /light http send", "http.response.body")
        plain_span = _span("proxy_request")

        result = self.exporter.export([request_span, body_span, plain_span])

        assert result == SpanExportResult.SUCCESS
        self.inner.export.assert_called_once_with([request_span, plain_span])

    def test_only_body_spans_skip_inner_exporter(self):
        result = self.exporter.export(
            [_span("send", "http.response.body"), _span("send", "http.response.body")]
        )

        assert result == SpanExportResult.SUCCESS
        self.inner.export.assert_not_called()

    def test_inner_result_returned(self):
        self.inner.export.return_value = SpanExportResult.FAILURE

        assert self.exporter.export([_span("proxy_request")]) == SpanExportResult.FAILURE

    def test_shutdown_and_flush_delegate(self):
        self.exporter.shutdown()
        self.exporter.force_flush(500)

        self.inner.shutdown.assert_called_once_with()
        self.inner.force_flush.assert_called_once_with(500)
