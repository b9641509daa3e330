import logging
from typing import Annotated

import typer

from formschema.cli.schema import forms, normalize, resolve

app = typer.Typer(
    name="formschema",
    help="Formschema CLI: resolve and normalize JSON Schema documents into form IR.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log resolver activity.")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


app.command("resolve")(resolve)
app.command("normalize")(normalize)
app.command("forms")(forms)


def main() -> None:
    app()
