"""Writer for `Module` objects."""

from ._module import Function, Module


def _print_function(function: Function) -> list[str]:
    lines = [function.decl.header("define") + " {"]
    for i, block in enumerate(function.blocks):
        if block.label is not None:
            if i > 0:
                lines.append("")
            lines.append(f"{block.label}:")
        lines.extend(f"  {instruction}" for instruction in block.instructions)
    lines.append("}")
    return lines


def print_module(module: Module) -> str:
    """Render a module as IR text.

    Sections are emitted in a fixed order: header, type definitions, globals,
    function definitions, declarations, attribute groups, metadata.
    """
    sections: list[list[str]] = [
        list(module.header),
        [str(t) for t in module.type_defs],
        list(module.globals),
    ]
    for function in module.functions:
        sections.append(_print_function(function))
    sections.extend(
        [
            [str(d) for d in module.declarations],
            [str(g) for g in module.attribute_groups],
            list(module.metadata),
        ],
    )
    return "\n\n".join("\n".join(section) for section in sections if section) + "\n"
