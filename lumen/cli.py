import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from lumen.config import Config, find_config
from lumen.exceptions import LumenError
from lumen.layout import ResponsiveImage
from lumen.metacache import DiskMetaCache, MemoryMetaCache
from lumen.request import parse_request
from lumen.resizer import Resizer


class ColoredFormatter(logging.Formatter):
    """
    Custom formatter with colors for different log levels
    """

    COLORS = {
        logging.DEBUG: "\033[90m",  # Grey
        logging.INFO: "\033[37m",  # White
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[31m",  # Red
    }
    RESET = "\033[0m"

    ABBREVIATIONS = {
        "DEBUG": "DBG",
        "INFO": "INF",
        "WARNING": "WRN",
        "ERROR": "ERR",
        "CRITICAL": "CRT",
    }

    def format(self, record):
        color = self.COLORS.get(record.levelno, self.RESET)
        levelname_abbr = self.ABBREVIATIONS.get(record.levelname, record.levelname[:3])
        record.levelname = f"{color}{levelname_abbr:>3}{self.RESET}"
        record.msg = f"{color}{record.msg}{self.RESET}"
        return super().format(record)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(
        ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False
    ),
    default="INFO",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: lumen.yaml here or in a parent directory)",
)
@click.pass_context
def main(ctx, log_level: str, config_path: Path | None):
    # Configure logging with custom colored formatter
    handler = logging.StreamHandler()
    handler.setFormatter(
        ColoredFormatter("%(asctime)s | %(levelname)s | %(message)s", datefmt="%H:%M")
    )
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=[handler],
    )
    try:
        if config_path is None:
            config_path = find_config(Path.cwd())
        ctx.obj = Config.from_file(config_path)
    except LumenError as e:
        raise click.ClickException(str(e))


@main.command()
@click.option("--host", default="127.0.0.1")
@click.option("--port", default=8000, type=int)
@click.pass_obj
def serve(config: Config, host: str, port: int):
    """
    Serve cached images over HTTP
    """
    import uvicorn

    from lumen.server import create_app
    from lumen.sweeper import ExpirySweeper

    resizer = Resizer(config)
    sweeper = None
    if config.config_data.cache_ttl > 0 and config.config_data.sweep_interval > 0:
        sweeper = ExpirySweeper(resizer, config.config_data.sweep_interval)
        sweeper.start()
        logging.info(f"Expiry sweep every {config.config_data.sweep_interval}s")
    logging.info(f"Serving {config.source_path} from {config.cache_path}")
    try:
        uvicorn.run(create_app(config), host=host, port=port, log_config=None)
    finally:
        if sweeper is not None:
            sweeper.stop()


@main.command()
@click.argument("file")
@click.argument("width", type=int)
@click.option("--ext", default=None, help="Output extension")
@click.option("--version", "version", default=None, help="Force a version token")
@click.pass_obj
def url(config: Config, file: str, width: int, ext: str | None, version: str | None):
    """
    Print the public URL for an image at one width
    """
    try:
        click.echo(config.image_url(file, width, output_ext=ext, version=version))
    except LumenError as e:
        raise click.ClickException(str(e))


@main.command()
@click.argument("file")
@click.option(
    "--widths",
    default="full",
    help="Preset name, fraction, or comma-separated pixel widths",
)
@click.option("--gutter", default=0, type=int)
@click.option("--static", is_flag=True, default=False)
@click.option("--ext", default=None, help="Output extension")
@click.pass_obj
def widths(
    config: Config, file: str, widths: str, gutter: int, static: bool, ext: str | None
):
    """
    Show the widths and URLs a layout would reference
    """
    widths_value: str | list[int] = widths
    if "," in widths or widths.isdigit():
        widths_value = [int(w) for w in widths.split(",") if w.strip()]
    if config.meta_cache_path is not None:
        meta_cache = DiskMetaCache(config.meta_cache_path)
    else:
        meta_cache = MemoryMetaCache()
    try:
        image_set = ResponsiveImage(config, meta_cache).render(
            file=file, widths=widths_value, gutter=gutter, static=static, output_ext=ext
        )
    except LumenError as e:
        raise click.ClickException(str(e))
    finally:
        meta_cache.close()

    console = Console()
    table = Table(title=f"{file} ({image_set.width}x{image_set.height})")

    table.add_column("Viewport", justify="right", style="cyan")
    table.add_column("Density", justify="right", style="magenta")
    table.add_column("Width", justify="right", style="green")
    table.add_column("URL", style="yellow")

    for viewport, entry in image_set.resolutions.items():
        for density, width in entry.items():
            table.add_row(
                f"{viewport}px",
                f"{density}x",
                str(width),
                config.image_url(file, width, output_ext=ext),
            )

    console.print(table)
    click.echo(f"sizes: {', '.join(image_set.sizes)}")


@main.group()
def purge():
    """
    Delete files from the image cache
    """
    pass


@purge.command("expired")
@click.pass_obj
def purge_expired(config: Config):
    """
    Delete cache files older than the configured TTL
    """
    if config.config_data.cache_ttl <= 0:
        click.echo("No cache_ttl configured; nothing expires")
        return
    click.echo(f"{Resizer(config).clean_expired()} files deleted")


@purge.command("image")
@click.argument("base_path")
@click.pass_obj
def purge_image(config: Config, base_path: str):
    """
    Delete every cached variant of one image
    """
    click.echo(f"{Resizer(config).clean_image(base_path)} files deleted")


@purge.command("all")
@click.confirmation_option(prompt="Delete the entire image cache?")
@click.pass_obj
def purge_all(config: Config):
    """
    Delete the entire image cache
    """
    click.echo(f"{Resizer(config).clean_all()} files deleted")


@main.group()
def debug():
    """
    Debug commands for inspecting internal state
    """
    pass


@debug.command("parse")
@click.argument("path")
@click.pass_obj
def debug_parse(config: Config, path: str):
    """
    Show how a request path is parsed, and whether it is current
    """
    prefix = config.config_data.public_url_prefix
    if path.startswith(prefix):
        path = path[len(prefix) :]
    try:
        request = parse_request(path)
    except LumenError as e:
        raise click.ClickException(str(e))
    current = config.version_for(request.base_path)

    console = Console()
    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Base path", request.base_path)
    table.add_row("Width", str(request.width))
    table.add_row("Version", request.version)
    table.add_row("Current version", current)
    table.add_row("Output extension", request.output_ext)
    table.add_row("Source", str(config.source_file(request.base_path)))
    table.add_row("Cache file", str(config.cache_file(request)))
    console.print(table)


if __name__ == "__main__":
    main()
