"""Configuration shipped to an agent when rendering produces no pipelines."""

NOOP_CONFIG = """# This minimal configuration is applied when a configuration
# results in a partial configuration with no pipelines.
#
# This can occur if there are only sources or only destinations
# or if there are sources and destinations but no pipelines can
# be formed because they support different types of telemetry.
#
# This configuration is designed to put a minimal load on the
# collector until a time when a new configuration is available.
# Currently the collector will refuse to run with an empty
# configuration, so instead this configuration is used.

receivers:
  hostmetrics:
    collection_interval: 1h
    scrapers:
      load:
      memory:

processors:
  batch:

exporters:
  logging:
    loglevel: info

service:
  pipelines:
    metrics:
      receivers: [hostmetrics]
      processors: [batch]
      exporters: [logging]
"""
