"""One module per subcommand; each exposes `configure_*_parser` and `run_*_command`."""
