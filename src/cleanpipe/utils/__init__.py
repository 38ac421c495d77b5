# Shared utilities: configuration, logging, config validation
