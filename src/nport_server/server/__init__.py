"""HTTP server and command line entry point."""
