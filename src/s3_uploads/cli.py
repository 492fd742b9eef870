# cli.py
import asyncio
import logging
import sys

import click

from s3_uploads.options import S3Options
from s3_uploads.settings import get_settings
from s3_uploads.uploader import S3Uploader

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@click.group()
def cli():
    """CLI commands for direct-to-S3 uploads"""
    configure_logging(get_settings().log_level)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  Deployment Mode: {settings.deployment_mode}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  S3 Bucket: {settings.s3_bucket_name}")
    print(f"  S3 ACL: {settings.s3_acl}")
    print(f"  S3 Key Names: {settings.s3_keyname}")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--keyname",
              type=click.Choice(["uuid", "filename"]),
              default=None,
              help="Key naming strategy (defaults to the S3_KEYNAME setting)")
@click.option("--prefix",
              default=None,
              help="Store objects as PREFIX/<uuid>, keeping the file extension")
@click.option("--bucket", default=None, help="Target bucket (defaults to the S3_BUCKET_NAME setting)")
def upload(files, keyname, prefix, bucket):
    """Upload FILES to S3"""
    if prefix and keyname:
        raise click.UsageError("--prefix and --keyname cannot be used together")

    settings = get_settings()
    uploader = None

    def prefixed_key(file_id):
        return f"{prefix.rstrip('/')}/{uploader.get_uuid(file_id)}"

    overrides = {"keyname": prefixed_key if prefix else (keyname or settings.s3_keyname)}
    if bucket:
        overrides["bucket"] = bucket
    options = S3Options.from_settings(settings, **overrides)

    uploader = S3Uploader(options, settings)
    for path in files:
        uploader.add_file(path)

    results = asyncio.run(uploader.upload_all())

    if settings.deployment_mode == "local-dev":
        location = settings.storage_dir
    else:
        location = f"s3://{options.bucket}"

    for record in uploader.get_uploads():
        if results.get(record.id):
            print(f"✅ {record.name} -> {location}/{uploader.get_key(record.id)}")
        else:
            print(f"❌ {record.name}: {record.error}")

    if not all(results.values()):
        sys.exit(1)


if __name__ == "__main__":
    cli()
