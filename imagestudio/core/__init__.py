# Core package - configuration, errors, logging, redis
