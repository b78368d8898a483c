"""
Go module builds: the module zip is recreated with golang.org/x/mod/zip,
the same code the module proxy uses to serve `.zip` files.
"""
from __future__ import annotations

import base64

from oss_rebuild.core.domain.strategies import (
    Flowable,
    StepContext,
    Strategy,
    WorkflowStep,
    WorkflowStrategy,
    register_strategy,
    register_tool,
)
from oss_rebuild.exceptions import InferenceError

_ZIP_TOOL_MOD = """
module gomodzip

go 1.25.4

require golang.org/x/mod v0.30.0
"""

_ZIP_TOOL_MAIN = """
package main

import (
	"os"
	"log"
	"golang.org/x/mod/module"
	"golang.org/x/mod/zip"
)

func main() {
	f, err := os.Create("/out/module.zip")
	if err != nil {
		panic(err)
	}
	defer f.Close()
	m := module.Version{Path: os.Args[1], Version: os.Args[2]}
	if err := zip.CreateFromDir(f, m, os.Args[3]); err != nil {
		log.Fatal(err)
	}
}
"""

ZIP_TOOL_MOD_B64 = base64.b64encode(_ZIP_TOOL_MOD.encode()).decode()
ZIP_TOOL_MAIN_B64 = base64.b64encode(_ZIP_TOOL_MAIN.encode()).decode()


@register_tool("go/buildziptool", needs=["go"])
def _go_build_zip_tool(ctx: StepContext) -> str:
    mod = ctx.with_.get("mod", "")
    script = ctx.with_.get("script", "")
    if not mod or not script:
        raise InferenceError("go/buildziptool requires 'mod' and 'script'")
    return "\n".join(
        [
            "mkdir /tools/",
            f"echo {mod} | base64 -d > /tools/go.mod",
            f"echo {script} | base64 -d > /tools/main.go",
            "cd /tools/",
            "go mod tidy",
            "go build ./main.go",
        ]
    )


@register_strategy
class GoBuild(Flowable, Strategy):
    """Checks out the module at its version tag and zips it the way the proxy does."""

    def to_workflow(self) -> WorkflowStrategy:
        return WorkflowStrategy(
            location=self.location,
            source_steps=[WorkflowStep(uses="git-checkout")],
            deps_steps=[
                WorkflowStep(
                    uses="go/buildziptool",
                    with_={"mod": ZIP_TOOL_MOD_B64, "script": ZIP_TOOL_MAIN_B64},
                )
            ],
            build_steps=[
                WorkflowStep(
                    runs="mkdir /out && cd /tools/ && go run ./main.go {{.Target.Package}} {{.Target.Version}} /src/{{.Location.Dir}}"
                )
            ],
            output_path="../out/module.zip",
        )
