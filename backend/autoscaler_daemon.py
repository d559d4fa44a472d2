import sys
import signal
import logging
import threading
import traceback
from backend.config import LOG_FILE, configure_logging, load_config
from backend.main import build_controller

# Set by the signal handler; the loop exits after the in-flight tick
shutdown_requested = threading.Event()


def signal_handler(sig, frame):
    """Handle shutdown signals gracefully."""
    logging.info("Shutdown signal received, finishing current cycle...")
    shutdown_requested.set()


def autoscale_loop(controller=None):
    """Main daemon loop."""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    config = controller.config if controller else load_config()
    controller = controller or build_controller(config)

    logging.info("=" * 60)
    logging.info("Autoscaler daemon started")
    logging.info(f"Target: {config.namespace}/{config.deployment}")
    logging.info(f"Reconcile interval: {config.reconcile_interval_seconds} seconds")
    logging.info(f"Dry run mode: {config.dry_run}")
    logging.info("=" * 60)

    print(f"\n🚀 Autoscaler daemon started")
    print(f"   Target: {config.namespace}/{config.deployment}")
    print(f"   Replicas: {controller.current_replicas} (bounds {config.min_replicas}-{config.max_replicas})")
    print(f"   Dry run: {config.dry_run}")
    print(f"   Log file: {LOG_FILE}")
    print(f"\nPress Ctrl+C to stop\n")

    controller.run(shutdown_requested)

    logging.info("Autoscaler daemon stopped")
    print("\n✅ Autoscaler daemon stopped gracefully")


if __name__ == "__main__":
    configure_logging()
    try:
        autoscale_loop()
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        logging.error(traceback.format_exc())
        sys.exit(1)
