"""Command-line tools (argparse) for serving and operating the queue processor."""
