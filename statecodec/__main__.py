"""statecodec 命令行工具.

检查容器类的决议结果: 字段模式、wire key、省略方式、约束推导策略与约束.
"""

import importlib
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from . import __version__
from .bounds import type_repr
from .resolve import ResolvedField

if TYPE_CHECKING:
    import click as click_module
    from rich.console import Console
    from rich.syntax import Syntax
    from rich.text import Text
    from rich.tree import Tree
else:
    try:
        import click as click_module
        from rich.console import Console
        from rich.syntax import Syntax
        from rich.text import Text
        from rich.tree import Tree
    except ImportError:
        click_module = None
        Console = None
        Syntax = None
        Text = None
        Tree = None

click = click_module


def _describe_field(item: ResolvedField) -> dict[str, Any]:
    return {
        "name": item.declared_name,
        "wire_key": item.wire_key,
        "type": type_repr(item.declared_type),
        "mode": item.mode.value,
        "omission": item.omission.value,
        "codec": None if item.codec is None else type_repr(type(item.codec)),
    }


def describe(cls: Any) -> dict[str, Any]:
    """生成容器决议结果的字典描述."""
    codec = cls.state_codec()
    resolved = codec.resolved
    result: dict[str, Any] = {
        "name": resolved.name,
        "kind": resolved.kind,
        "mode": resolved.mode.value,
        "marker": None if resolved.marker is None else str(resolved.marker),
        "strategy": codec.bounds.strategy,
        "bounds": [str(bound) for bound in codec.bounds],
    }
    if resolved.kind == "union":
        result["variants"] = [
            {
                "name": variant.name,
                "tag": variant.tag,
                "index": variant.index,
                "mode": variant.mode.value,
                "style": variant.style,
                "fields": [_describe_field(f) for f in variant.fields],
            }
            for variant in resolved.variants
        ]
    else:
        result["transparent"] = resolved.transparent
        result["fields"] = [_describe_field(f) for f in resolved.fields]
    return result


def load_target(target: str) -> Any:
    """按 `module:Class` 导入容器类.

    Raises:
        ValueError: 格式错误, 或目标不是 StateStruct.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"目标格式应为 module:Class, 得到 {target!r}")
    obj: Any = importlib.import_module(module_name)
    for part in attr.split("."):
        obj = getattr(obj, part)
    if getattr(obj, "__state_kind__", None) is None:
        raise ValueError(f"{target} 不是 StateStruct 子类")
    return obj


if not click:

    def main() -> None:
        """入口函数 (缺少 click)."""
        print("错误: 未检测到 'click' 模块,无法运行 CLI 工具。", file=sys.stderr)
        print(
            "\n该功能属于可选组件,请通过以下命令安装依赖:\n"
            "  pip install 'statecodec[cli]'",
            file=sys.stderr,
        )
        sys.exit(1)

else:

    def _field_label(field: dict[str, Any]) -> "Text":
        label = Text()
        label.append(field["name"], style="bold blue")
        if field["wire_key"] != field["name"]:
            label.append(f" -> {field['wire_key']!r}", style="green")
        label.append(f": {field['type']} ", style="cyan")
        if field["omission"] == "skip":
            label.append("[skip]", style="dim")
        else:
            style = "magenta" if field["mode"] == "stateful" else "yellow"
            label.append(f"[{field['mode']}]", style=style)
        if field["codec"]:
            label.append(f" codec={field['codec']}", style="dim")
        return label

    def _build_rich_tree(info: dict[str, Any]) -> "Tree":
        """构建 Rich 树."""
        title = Text()
        title.append(info["name"], style="bold white")
        title.append(f" ({info['kind']}, default {info['mode']})", style="dim")
        if info["marker"]:
            title.append(f" {info['marker']}", style="bold yellow")
        root = Tree(title)

        if info["kind"] == "union":
            variants = root.add(Text("Variants", style="italic"))
            for variant in info["variants"]:
                label = Text()
                label.append(f"[{variant['index']}] ", style="dim")
                label.append(variant["tag"], style="bold yellow")
                label.append(f" ({variant['style']}, {variant['mode']})", style="cyan")
                branch = variants.add(label)
                for field in variant["fields"]:
                    branch.add(_field_label(field))
        else:
            fields = root.add(
                Text(
                    "Fields (transparent)" if info["transparent"] else "Fields",
                    style="italic",
                )
            )
            for field in info["fields"]:
                fields.add(_field_label(field))

        bounds = root.add(Text(f"Bounds ({info['strategy']})", style="italic"))
        for bound in info["bounds"]:
            bounds.add(Text(bound, style="green"))
        return root

    def _print_tree(info: dict[str, Any], file: Any = None) -> None:
        console = Console(file=file, force_terminal=file is None)
        console.print(_build_rich_tree(info))

    def _format_pretty(info: dict[str, Any]) -> str:
        lines = [f"{info['name']} ({info['kind']}, default {info['mode']})"]
        if info["marker"]:
            lines.append(f"  marker: {info['marker']}")

        def field_line(field: dict[str, Any]) -> str:
            mode = "skip" if field["omission"] == "skip" else field["mode"]
            return (
                f"{field['name']} -> {field['wire_key']}: {field['type']} [{mode}]"
            )

        if info["kind"] == "union":
            for variant in info["variants"]:
                lines.append(
                    f"  [{variant['index']}] {variant['tag']} "
                    f"({variant['style']}, {variant['mode']})"
                )
                lines.extend(f"      {field_line(f)}" for f in variant["fields"])
        else:
            lines.extend(f"  {field_line(f)}" for f in info["fields"])
        lines.append(f"  bounds ({info['strategy']}):")
        lines.extend(f"    {bound}" for bound in info["bounds"])
        return "\n".join(lines)

    @click.group(help="statecodec 命令行工具")
    @click.version_option(__version__, prog_name="statecodec")
    def cli() -> None:
        """statecodec 命令行工具."""

    @cli.command("inspect", help="检查 StateStruct 的决议结果与约束")
    @click.argument("target")
    @click.option(
        "--format",
        "output_format",
        type=click.Choice(["pretty", "json", "tree"]),
        default="tree",
        show_default=True,
        help="输出格式",
    )
    @click.option(
        "-o",
        "--output",
        "output_file",
        type=click.Path(dir_okay=False, writable=True),
        help="将输出保存到文件 (如不指定则输出到控制台)",
    )
    @click.option(
        "-v",
        "--verbose",
        is_flag=True,
        help="显示详细的构建过程信息",
    )
    def inspect_command(
        target: str,
        output_format: str,
        output_file: str | None,
        verbose: bool,
    ) -> None:
        """检查 StateStruct 的决议结果与约束.

        Examples:
          # 以树形显示
          python -m statecodec inspect myapp.models:Order

          # 以 JSON 格式输出到文件
          python -m statecodec inspect myapp.models:Order --format json -o order.json
        """
        if verbose:
            import logging

            logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

        try:
            cls = load_target(target)
        except (ImportError, AttributeError, ValueError) as e:
            raise click.BadParameter(str(e), param_hint="TARGET") from e

        try:
            info = describe(cls)
        except Exception as e:
            if verbose:
                import traceback

                traceback.print_exc(file=sys.stderr)
            raise click.ClickException(f"构建失败: {e}") from e

        if output_format == "tree":
            if output_file:
                with open(output_file, "w", encoding="utf-8") as f:
                    _print_tree(info, file=f)
                click.echo(f"结果已保存到: {output_file}", err=True)
            else:
                _print_tree(info)
            return

        if output_format == "json":
            output_text = json.dumps(info, indent=2, ensure_ascii=False)
        else:
            output_text = _format_pretty(info)

        if output_file:
            Path(output_file).write_text(output_text, encoding="utf-8")
            click.echo(f"结果已保存到: {output_file}", err=True)
        elif output_format == "json":
            Console().print(Syntax(output_text, "json", theme="monokai", word_wrap=True))
        else:
            click.echo(output_text)

    def main() -> None:
        """入口函数."""
        cli()


if __name__ == "__main__":
    main()
