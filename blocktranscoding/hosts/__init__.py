"""Media server integrations: session registries and command sinks."""
