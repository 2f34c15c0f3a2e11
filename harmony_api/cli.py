"""harmony-api CLI: bridge server and status check."""

import argparse
import sys


def main():
    parser = argparse.ArgumentParser(
        prog="harmony-api",
        description="harmony-api: MQTT and HTTP bridge for Harmony hubs",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the bridge")
    serve_parser.add_argument("--port", type=int, default=None, help="HTTP port (default: $PORT or 8282)")
    serve_parser.add_argument("--host", default=None, help="HTTP host (default: 0.0.0.0)")
    serve_parser.add_argument("--config", default=None, help="JSON config file overlaid on environment settings")
    serve_parser.add_argument("--verbose", action="store_true", help="Enable DEBUG logging")
    serve_parser.add_argument("--quiet", action="store_true", help="Only show WARNING and above")

    status_parser = subparsers.add_parser("status", help="Show status of a running bridge")
    status_parser.add_argument("--url", default="http://127.0.0.1:8282", help="Bridge base URL")
    status_parser.add_argument("--json", action="store_true", dest="json_output", help="Output as JSON")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _dispatch(args)


def _dispatch(args):
    if args.command == "serve":
        log_level = "INFO"
        if args.verbose:
            log_level = "DEBUG"
        elif args.quiet:
            log_level = "WARNING"
        _serve(args.host, args.port, args.config, log_level)

    elif args.command == "status":
        sys.exit(_status(args.url, json_output=args.json_output))

    else:
        print(f"Unknown command: {args.command}")
        sys.exit(1)


def _serve(host: str | None, port: int | None, config_path: str | None, log_level: str = "INFO"):
    """Start the bridge: discovery, MQTT, and the HTTP API."""
    import asyncio
    import logging

    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger("harmony_api.serve")

    import uvicorn

    from harmony_api.config import BridgeConfig
    from harmony_api.hub.api import create_api
    from harmony_api.hub.client import load_client_factory
    from harmony_api.hub.core import HubRegistry
    from harmony_api.hub.dispatcher import CommandDispatcher
    from harmony_api.hub.router import InboundCommandRouter
    from harmony_api.modules.discovery import DiscoveryModule
    from harmony_api.modules.mqtt_bridge import MqttBridgeModule

    config = BridgeConfig.from_file(config_path) if config_path else BridgeConfig.from_env()
    if host:
        config.http_host = host
    if port:
        config.http_port = port

    async def start():
        if not config.client_factory:
            logger.error("HARMONY_CLIENT_FACTORY (module:callable) is required")
            return
        try:
            client_factory = load_client_factory(config.client_factory)
        except Exception as e:
            logger.error(f"Cannot load hub client factory {config.client_factory!r}: {e}")
            return

        logger.info("=" * 70)
        logger.info("harmony-api")
        logger.info("=" * 70)
        if config.enable_mqtt:
            logger.info(f"MQTT: {config.mqtt_host}:{config.mqtt_port} (namespace {config.topic_namespace})")
        if config.enable_http_server:
            logger.info(f"Server: http://{config.http_host}:{config.http_port}")
        logger.info("=" * 70)

        registry = HubRegistry()
        await registry.initialize()
        commands = InboundCommandRouter(registry, CommandDispatcher(registry))

        async def _init_module(module):
            registry.register_module(module)
            try:
                await module.initialize()
                registry.mark_module_running(module.module_id)
            except Exception as e:
                registry.mark_module_failed(module.module_id)
                logger.error(f"Module {module.module_id} failed to initialize: {e}")

        # MQTT first so the first state transitions are published
        if config.enable_mqtt:
            await _init_module(
                MqttBridgeModule(
                    registry,
                    commands,
                    mqtt_host=config.mqtt_host,
                    mqtt_port=config.mqtt_port,
                    mqtt_user=config.mqtt_username,
                    mqtt_password=config.mqtt_password,
                    namespace=config.topic_namespace,
                )
            )
        await _init_module(DiscoveryModule(registry, client_factory, config.hubs))

        try:
            if config.enable_http_server:
                app = create_api(registry, commands)
                server = uvicorn.Server(
                    uvicorn.Config(
                        app,
                        host=config.http_host,
                        port=config.http_port,
                        log_level=log_level.lower(),
                        access_log=(log_level != "WARNING"),
                    )
                )
                await server.serve()
            else:
                await asyncio.Event().wait()
        finally:
            if registry.is_running():
                await registry.shutdown()

    try:
        asyncio.run(start())
    except KeyboardInterrupt:
        pass


def _status(base_url: str, json_output: bool = False) -> int:
    """Show bridge status by querying /health. Returns a process exit code."""
    import json
    import urllib.request

    result = {"url": base_url, "running": False, "health": None}
    try:
        req = urllib.request.Request(f"{base_url.rstrip('/')}/health", method="GET")
        with urllib.request.urlopen(req, timeout=2) as resp:
            result["health"] = json.loads(resp.read())
            result["running"] = True
    except Exception as e:
        result["error"] = str(e)

    if json_output:
        print(json.dumps(result, indent=2))
        return 0 if result["running"] else 1

    print("harmony-api Status")
    print("=" * 40)
    print(f"  Bridge:           {'running' if result['running'] else 'stopped'}")
    health = result["health"]
    if health:
        uptime = health.get("uptime_seconds", 0)
        hours, remainder = divmod(int(uptime), 3600)
        minutes, secs = divmod(remainder, 60)
        print(f"  Uptime:           {hours}h {minutes}m {secs}s")
        modules = health.get("modules", {})
        running = sum(1 for s in modules.values() if s == "running")
        print(f"  Modules:          {running}/{len(modules)} running")
        hubs = health.get("hubs", {})
        print(f"  Hubs:             {len(hubs)}")
        for slug, info in hubs.items():
            current = info.get("current_activity") or "unknown"
            print(f"    {slug}: {current} ({info.get('activities', 0)} activities, {info.get('devices', 0)} devices)")
    return 0 if result["running"] else 1


if __name__ == "__main__":
    main()
