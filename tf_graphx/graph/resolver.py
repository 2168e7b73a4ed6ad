"""
tf_graphx/graph/resolver.py — Reference → resource address resolution.

A reference is the textual token Terraform records for every symbol used in
a configuration expression ("aws_vpc.main.id", "var.region",
"module.net.aws_subnet.a[0]", "data.aws_ami.ubuntu.id", ...). Resolution maps
it to the address of the resource it names, or to "" when it names no
resource. A miss is an expected outcome, never an error.

Matching is longest-address-first: "module.x.aws_instance.foo" must win over
the textual prefix "module.x" for the reference "module.x.aws_instance.foo.id".
"""

import re
from typing import Iterable, Sequence

# First path segments that name symbolic scopes, never resources.
SYMBOLIC_SCOPES = frozenset({"var", "local"})

DATA_SCOPE = "data"

_INDEX_RE = re.compile(r"\[[^\]]*\]")


def sort_addresses(addresses: Iterable[str]) -> tuple[str, ...]:
    """Order addresses longest first (ties lexicographic) for resolve_reference()."""
    return tuple(sorted(set(addresses), key=lambda a: (-len(a), a)))


def is_symbolic_reference(reference: str) -> bool:
    """True for references into a variable or local value scope."""
    return reference.split(".", 1)[0] in SYMBOLIC_SCOPES


def base_address(address: str) -> str:
    """
    Strip every instance index from an address.

    "module.app[1].aws_instance.web[\"a\"]" -> "module.app.aws_instance.web".
    Configuration and prior-state dependency lists name resources without
    instance keys, while planned values carry one node per instance.
    """
    return _INDEX_RE.sub("", address)


def qualify_reference(reference: str, module_path: str) -> str:
    """
    Make a reference found inside a child module absolute.

    Inside module "module.net", the reference "aws_subnet.a.id" names
    "module.net.aws_subnet.a.id". Symbolic references return "" since they
    never produce edges; at the root (empty module_path) the reference is
    returned unchanged.
    """
    if is_symbolic_reference(reference):
        return ""
    if not module_path:
        return reference
    return f"{module_path}.{reference}"


def resolve_reference(reference: str, known_addresses: Sequence[str]) -> str:
    """
    Resolve a reference to the most specific known resource address.

    Rules, in order:
        1. var.* / local.* references resolve to "".
        2. The first address `a` in known_addresses (longest first) where the
           reference equals `a`, or starts with `a + "."` (attribute access)
           or `a + "["` (indexed access).
        3. data.* references with no match resolve to their first three
           segments ("data.kind.name"), even though no node exists for it.
           Callers drop edges whose target is not an actual node id.
        4. Otherwise "".

    Args:
        reference:       Reference string from an expression's "references".
        known_addresses: Candidate addresses, ordered by sort_addresses().

    Returns:
        The resolved address, or "" when the reference names no resource.
    """
    if not isinstance(reference, str) or not reference:
        return ""

    parts = reference.split(".")
    if parts[0] in SYMBOLIC_SCOPES:
        return ""

    for address in known_addresses:
        if (
            reference == address
            or reference.startswith(address + ".")
            or reference.startswith(address + "[")
        ):
            return address

    if parts[0] == DATA_SCOPE and len(parts) >= 3:
        return ".".join(parts[:3])

    return ""


_MODULE_SEGMENT_RE = re.compile(r"module\.([^.\[]+)(\[[^\]]*\])?\.")


def module_instances(address: str) -> tuple[tuple[str, str], ...]:
    """
    The (module name, instance key) pairs leading an address.

    "module.app[0].module.db.aws_db_instance.x" -> (("app", "[0]"), ("db", "")).
    """
    segments = []
    pos = 0
    while True:
        match = _MODULE_SEGMENT_RE.match(address, pos)
        if match is None:
            return tuple(segments)
        segments.append((match.group(1), match.group(2) or ""))
        pos = match.end()


def same_module_instance(source: str, target: str) -> bool:
    """
    False when both addresses sit under different instances of one module call.

    Module paths are compared from the root while the call names agree: a
    keyed segment on both sides must carry the same key. Once the names
    diverge the addresses belong to unrelated calls and never conflict.
    """
    for (s_name, s_key), (t_name, t_key) in zip(
        module_instances(source), module_instances(target)
    ):
        if s_name != t_name:
            return True
        if s_key and t_key and s_key != t_key:
            return False
    return True


_MODULE_PREFIX_RE = re.compile(r"^(?:module\.[^.\[]+(?:\[[^\]]*\])?\.)*")


def module_base_address(address: str) -> str:
    """
    Strip the instance keys of module calls only.

    "module.app[1].aws_instance.web[0]" -> "module.app.aws_instance.web[0]".
    """
    return _MODULE_PREFIX_RE.sub(lambda m: _INDEX_RE.sub("", m.group(0)), address, count=1)
