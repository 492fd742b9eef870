pytest_plugins = [
    "tests.fixtures.aws_fixtures",
    "tests.fixtures.uploader_fixtures",
]
