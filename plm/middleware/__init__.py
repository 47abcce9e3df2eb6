"""Request middleware: logging setup and bearer-token identity."""
