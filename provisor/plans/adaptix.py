"""Build and install the Adaptix C2 framework from source."""

from __future__ import annotations

from ..steps import (
    BuildSpec,
    CertificateSpec,
    ChownSpec,
    CloneSpec,
    CopySpec,
    DirectoriesSpec,
    MoveSpec,
    PackagesSpec,
    RemoveSpec,
    SNAP_BIN,
    SnapSpec,
)

INSTALL_DIR = "{install_root}/Adaptix_C2_Framework"
SOURCE_DIR = "{work_dir}/AdaptixC2"
EXTENSION_KIT_DIR = "{work_dir}/Extension-Kit"

REPOSITORIES = {
    "AdaptixC2": "https://github.com/Adaptix-Framework/AdaptixC2.git",
    "Extension-Kit": "https://github.com/Adaptix-Framework/Extension-Kit.git",
}

DEPENDENCIES = [
    "golang-1.24",
    "mingw-w64",
    "make",
    "libxkbcommon-dev",
    "cmake",
    "libssl-dev",
    "qt6-base-dev",
    "qt6-websockets-dev",
    "gcc",
    "g++",
    "build-essential",
    "qt6-declarative-dev",
    "git",
    "snapd",
]

EXTENSION_DIRS = [
    "AD-BOF",
    "Creds-BOF",
    "Elevation-BOF",
    "Execution-BOF",
    "Injection-BOF",
    "Kerbeus-BOF",
    "LateralMovement-BOF",
    "Process-BOF",
    "SAL-BOF",
    "SAR-BOF",
]

SERVER_SUBJECT = (
    "/C=US/ST=New York/L=New York/O=Hacker/OU=Offensive Security"
    "/CN=Hacker/emailAddress=noreply@hacker.com"
)
BEACON_SUBJECT = (
    "/C=US/ST=Washington/L=Redmond/O=Microsoft Corporation"
    "/OU=Windows Update Services/CN=MSDN/emailAddress=noreply@microsoft.com"
)

INSTALLED = [f"{INSTALL_DIR}/adaptix-server", f"{INSTALL_DIR}/adaptix-client"]
INSTALLED_EXTENSIONS = [f"{INSTALL_DIR}/extensions"]


def adaptix_plan():
    from . import PlanSpec

    dist = f"{SOURCE_DIR}/dist"
    steps = [
        PackagesSpec(
            id="dependencies",
            description="Install build dependencies",
            packages=DEPENDENCIES,
        ),
        SnapSpec(
            id="cmake",
            description="Ensure CMake >= 3.29",
            name="cmake",
            min_version="3.29.0",
            depends_on=["dependencies"],
        ),
        CloneSpec(
            id="clone-adaptix",
            description="Clone AdaptixC2",
            url=REPOSITORIES["AdaptixC2"],
            destination=SOURCE_DIR,
            depends_on=["dependencies"],
            skip_if_exists=INSTALLED,
        ),
        CloneSpec(
            id="clone-extension-kit",
            description="Clone Extension-Kit",
            url=REPOSITORIES["Extension-Kit"],
            destination=EXTENSION_KIT_DIR,
            depends_on=["dependencies"],
            skip_if_exists=INSTALLED_EXTENSIONS,
        ),
    ]

    for target, artifact in (
        ("server", "adaptixserver"),
        ("extenders", "extenders"),
        ("client", "AdaptixClient"),
    ):
        steps.append(
            BuildSpec(
                id=f"build-{target}",
                description=f"Build AdaptixC2 {target}",
                directory=SOURCE_DIR,
                targets=[target],
                creates=[f"{dist}/{artifact}"],
                depends_on=["clone-adaptix", "cmake"],
                search_paths=[SNAP_BIN],
                skip_if_exists=INSTALLED,
            )
        )

    for name, subject in (("server", SERVER_SUBJECT), ("beacon", BEACON_SUBJECT)):
        steps.append(
            CertificateSpec(
                id=f"certificate-{name}",
                description=f"Generate {name} certificate",
                subject=subject,
                key=f"{dist}/{name}.rsa.key",
                cert=f"{dist}/{name}.rsa.crt",
                validity_days=3650,
                depends_on=["build-server", "build-extenders", "build-client"],
                skip_if_exists=[f"{INSTALL_DIR}/{name}.rsa.crt"],
            )
        )

    steps += [
        DirectoriesSpec(
            id="install-dir",
            description="Create install directory",
            paths=[INSTALL_DIR],
        ),
        CopySpec(
            id="install-framework",
            description="Copy built framework into the install directory",
            source=dist,
            destination=INSTALL_DIR,
            depends_on=["certificate-server", "certificate-beacon", "install-dir"],
            skip_if_exists=INSTALLED,
        ),
        MoveSpec(
            id="rename-client",
            description="Rename AdaptixClient to adaptix-client",
            source=f"{INSTALL_DIR}/AdaptixClient",
            destination=f"{INSTALL_DIR}/adaptix-client",
            depends_on=["install-framework"],
        ),
        MoveSpec(
            id="rename-server",
            description="Rename adaptixserver to adaptix-server",
            source=f"{INSTALL_DIR}/adaptixserver",
            destination=f"{INSTALL_DIR}/adaptix-server",
            depends_on=["install-framework"],
        ),
        RemoveSpec(
            id="extension-metadata",
            description="Remove Extension-Kit metadata files",
            paths=[
                f"{EXTENSION_KIT_DIR}/.gitignore",
                f"{EXTENSION_KIT_DIR}/LICENSE",
                f"{EXTENSION_KIT_DIR}/README.md",
            ],
            depends_on=["clone-extension-kit"],
        ),
        DirectoriesSpec(
            id="extension-build-dir",
            description="Create Extension-Kit build directory",
            paths=[f"{EXTENSION_KIT_DIR}/Build"],
            depends_on=["clone-extension-kit"],
            skip_if_exists=INSTALLED_EXTENSIONS,
        ),
    ]

    extension_steps = []
    for directory in EXTENSION_DIRS:
        step_id = f"build-{directory.lower()}"
        extension_steps.append(step_id)
        steps.append(
            BuildSpec(
                id=step_id,
                description=f"Build extension {directory}",
                directory=f"{EXTENSION_KIT_DIR}/{directory}",
                skip_if_missing=True,
                search_paths=[SNAP_BIN],
                depends_on=["extension-build-dir", "extension-metadata"],
            )
        )

    steps += [
        CopySpec(
            id="install-extensions",
            description="Copy built extensions into the install directory",
            source=EXTENSION_KIT_DIR,
            destination=f"{INSTALL_DIR}/extensions",
            depends_on=extension_steps + ["install-dir"],
            skip_if_exists=INSTALLED_EXTENSIONS,
        ),
        RemoveSpec(
            id="cleanup",
            description="Remove temporary repositories",
            paths=[SOURCE_DIR, EXTENSION_KIT_DIR],
            depends_on=["rename-client", "rename-server", "install-extensions"],
        ),
        ChownSpec(
            id="ownership",
            description="Hand the install directory to the invoking user",
            paths=[INSTALL_DIR],
            depends_on=["cleanup"],
        ),
    ]

    return PlanSpec(
        name="adaptix",
        description="Adaptix C2 framework built from source",
        notes=[
            f"Everything needed to use Adaptix Framework is in: {INSTALL_DIR}",
            "Please modify 'profile.json' in that folder to set up your server profile.",
            "Documentation: https://adaptix-framework.gitbook.io/adaptix-framework",
        ],
        steps=steps,
    )
