"""A small threaded RESP protocol server with pluggable command handlers."""