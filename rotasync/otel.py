from os import environ
from sys import stderr
from functools import wraps
from typing import IO, Sequence

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (SimpleSpanProcessor, BatchSpanProcessor,
                                            ConsoleSpanExporter, SpanExportResult)


class JsonlConsoleSpanExporter(ConsoleSpanExporter):
    """
    Writes one span per line, stderr by default so stdout stays free for the
    log sink.
    """

    def __init__(self, out: IO = stderr):
        self.out = out

    def export(self, spans: Sequence[ReadableSpan]):
        try:
            for span in spans:
                self.out.write(span.to_json(indent=None) + '\n')
            self.out.flush()
            return SpanExportResult.SUCCESS
        except Exception as e:
            print(e, file=stderr)
            return SpanExportResult.FAILURE


def _otlp_exporter():
    # only imported when asked for, it pulls in protobuf and requests
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    return OTLPSpanExporter()


exporters = {
    'otlp': (BatchSpanProcessor, _otlp_exporter),
    'jsonl': (SimpleSpanProcessor, JsonlConsoleSpanExporter),
}

# setup the span exporters
provider = TracerProvider(resource=Resource.create({'service.name': 'rotasync'}))
trace.set_tracer_provider(provider)
for name in environ.get('OTEL_TRACES_EXPORTER', 'none').split(','):
    name = name.strip()
    if name in ('', 'none'):
        continue
    if name not in exporters:
        raise ValueError(f"Unsupported OTEL_TRACES_EXPORTER = {name}, expected one of {sorted(exporters)}")
    processor, exporter = exporters[name]
    provider.add_span_processor(processor(exporter()))


def with_tracer(tracer: trace.Tracer):
    """
    Decorator that runs a function call inside a span named after it.

    :param tracer: the tracer that opens the span
    :type tracer: trace.Tracer
    """

    def decorator(func):

        @wraps(func)
        def wrapper(*args, **kwargs):
            full_path = f"{func.__module__}.{func.__qualname__}"
            with tracer.start_as_current_span(full_path):
                return func(*args, **kwargs)

        return wrapper

    return decorator
