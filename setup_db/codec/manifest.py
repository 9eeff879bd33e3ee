"""
Reads and writes nuspec manifest documents.

The nuspec namespace URI changes between schema versions, so every lookup
matches elements by local name (`{*}name`) regardless of the namespace the
root element declares.
"""

import logging
from xml.etree import ElementTree as ET

from setup_db.exceptions import ManifestParseError
from setup_db.models.package import DependencyDecl, DependencyGroup, Manifest

log = logging.getLogger(__name__)

DEFAULT_NUSPEC_NAMESPACE = "http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd"


def _text(element: ET.Element | None) -> str:
    if element is None or element.text is None:
        return ""
    return element.text.strip()


def _parse_dependency(element: ET.Element) -> DependencyDecl | None:
    dep_id = (element.get("id") or "").strip()
    if not dep_id:
        log.debug("Ignoring <dependency> element without an id.")
        return None
    version = (element.get("version") or "").strip() or None
    return DependencyDecl(id=dep_id, version=version)


def _parse_dependency_groups(metadata: ET.Element) -> tuple[DependencyGroup, ...]:
    groups: list[DependencyGroup] = []
    for deps in metadata.iterfind("{*}dependencies"):
        # Legacy nuspecs list <dependency> directly under <dependencies>
        flat = [
            dep
            for dep in map(_parse_dependency, deps.iterfind("{*}dependency"))
            if dep is not None
        ]
        if flat:
            groups.append(DependencyGroup(None, tuple(flat)))

        for group in deps.iterfind("{*}group"):
            target = (group.get("targetFramework") or "").strip() or None
            members = [
                dep
                for dep in map(_parse_dependency, group.iterfind("{*}dependency"))
                if dep is not None
            ]
            groups.append(DependencyGroup(target, tuple(members)))
    return tuple(groups)


def _parse_reference_files(metadata: ET.Element) -> tuple[str, ...]:
    files = (
        (ref.get("file") or "").strip()
        for ref in metadata.iterfind(".//{*}reference")
    )
    return tuple(dict.fromkeys(f for f in files if f))


def parse_manifest(data: bytes) -> Manifest:
    """
    Parses raw nuspec bytes into a Manifest.

    Args:
        data: The manifest document as downloaded or read from the cache.

    Returns:
        The parsed, immutable Manifest.

    Raises:
        ManifestParseError: If the document is not well-formed XML or lacks
        the mandatory id or version.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise ManifestParseError(f"Malformed nuspec document: {e}") from e

    metadata = root.find("{*}metadata")
    if metadata is None:
        raise ManifestParseError("Nuspec document has no <metadata> element.")

    package_id = _text(metadata.find("{*}id"))
    version = _text(metadata.find("{*}version"))
    if not package_id:
        raise ManifestParseError("Nuspec document does not declare a package id.")
    if not version:
        raise ManifestParseError(
            f"Nuspec document for '{package_id}' does not declare a version."
        )

    return Manifest(
        id=package_id,
        version=version,
        reference_files=_parse_reference_files(metadata),
        dependency_groups=_parse_dependency_groups(metadata),
    )


def serialize_manifest(
    manifest: Manifest, namespace: str = DEFAULT_NUSPEC_NAMESPACE
) -> bytes:
    """
    Writes a Manifest as a nuspec document in the given namespace.

    Elements are written unqualified under an `xmlns` declaration on the root,
    so they land in `namespace` while attributes stay unqualified.
    """
    root = ET.Element("package")
    if namespace:
        root.set("xmlns", namespace)
    metadata = ET.SubElement(root, "metadata")
    ET.SubElement(metadata, "id").text = manifest.id
    ET.SubElement(metadata, "version").text = manifest.version

    if manifest.dependency_groups:
        deps = ET.SubElement(metadata, "dependencies")
        for group in manifest.dependency_groups:
            group_el = ET.SubElement(deps, "group")
            if group.target_framework:
                group_el.set("targetFramework", group.target_framework)
            for dep in group.dependencies:
                dep_el = ET.SubElement(group_el, "dependency", id=dep.id)
                if dep.version:
                    dep_el.set("version", dep.version)

    if manifest.reference_files:
        refs = ET.SubElement(metadata, "references")
        for file_name in manifest.reference_files:
            ET.SubElement(refs, "reference", file=file_name)

    return ET.tostring(root, encoding="utf-8", xml_declaration=True)
