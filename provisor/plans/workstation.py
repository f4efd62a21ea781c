"""Home directory tooling layout for an assessment workstation."""

from __future__ import annotations

from ..contracts import FailurePolicy
from ..steps import (
    ChmodSpec,
    ChownSpec,
    CopySpec,
    DirectoriesSpec,
    DownloadSpec,
    HistorySpec,
    PackagesSpec,
    RemoveSpec,
)

WEB_UPLOAD_URL = (
    "https://raw.githubusercontent.com/B0rk/ChatGPT-Generated-Scripts/refs/heads/main/web_upload.py"
)
PEASS_RELEASE = "https://github.com/peass-ng/PEASS-ng/releases/download/20250526-9bcce952"
PEASS_FILES = [
    "linpeas.sh",
    "linpeas_linux_amd64",
    "linpeas_linux_386",
    "winPEAS.bat",
    "winPEASany_ofs.exe",
    "winPEASx64_ofs.exe",
    "winPEASx86_ofs.exe",
]

MIMIKATZ_SOURCE = "/usr/share/windows-resources/mimikatz"
LIGOLO_SOURCE = "/usr/share/ligolo-ng-common-binaries"

HISTORY = [
    "python3 {home}/web_upload.py --port 4444 --directory {home}/Upload",
    "cd Shellcode_Loaders",
    "mcs -platform:x64 -target:winexe -out:cs_payload.exe $HOME/cs_loader.cs",
    "x86_64-w64-mingw32-gcc c_loader.c -o c_payload.exe -lbcrypt -DUSE_NT_INJECTION",
    "cd /opt/adaptix_c2",
    "./adaptix-server -profile profile.json",
    "./adaptix-client",
]

TOOL_DIRS = ["ligolo-binaries", "mimikatz-binaries", "peas-ng"]


def _download_id(filename: str) -> str:
    return "download-" + filename.lower().replace("_", "-").replace(".", "-")


def workstation_plan():
    from . import PlanSpec

    steps = [
        PackagesSpec(
            id="packages",
            description="Install ligolo-ng and mimikatz",
            packages=["ligolo-ng", "mimikatz"],
        ),
        RemoveSpec(
            id="remove-default-dirs",
            description="Remove unused default user directories",
            paths=["{home}/Music", "{home}/Public", "{home}/Templates", "{home}/Videos"],
            on_failure=FailurePolicy.CONTINUE_INDEPENDENT,
        ),
        DirectoriesSpec(
            id="directories",
            description="Create tool directories",
            paths=["{home}/Tools", "{home}/Upload", "{home}/Shellcode_Loaders"]
            + [f"{{home}}/{root}/{name}" for root in ("Tools", "Upload") for name in TOOL_DIRS],
        ),
        DownloadSpec(
            id="download-web-upload",
            description="Download web_upload.py",
            url=WEB_UPLOAD_URL,
            destination="{home}/web_upload.py",
            on_failure=FailurePolicy.CONTINUE_INDEPENDENT,
        ),
    ]

    peass_steps = []
    for filename in PEASS_FILES:
        step_id = _download_id(filename)
        peass_steps.append(step_id)
        steps.append(
            DownloadSpec(
                id=step_id,
                description=f"Download {filename}",
                url=f"{PEASS_RELEASE}/{filename}",
                destination="{home}/Tools/peas-ng/",
                depends_on=["directories"],
                on_failure=FailurePolicy.CONTINUE_INDEPENDENT,
            )
        )

    steps.append(
        ChmodSpec(
            id="linpeas-executable",
            description="Make linpeas.sh executable",
            path="{home}/Tools/peas-ng/linpeas.sh",
            mode="0755",
            depends_on=[_download_id("linpeas.sh")],
        )
    )

    copies = []
    for name, source, target in (
        ("mimikatz", MIMIKATZ_SOURCE, "mimikatz-binaries"),
        ("ligolo", LIGOLO_SOURCE, "ligolo-binaries"),
    ):
        for root in ("Tools", "Upload"):
            step_id = f"copy-{name}-{root.lower()}"
            copies.append(step_id)
            steps.append(
                CopySpec(
                    id=step_id,
                    description=f"Copy {name} binaries into {root}",
                    source=source,
                    destination=f"{{home}}/{root}/{target}",
                    depends_on=["packages", "directories"],
                )
            )

    copies.append("copy-peas-upload")
    steps += [
        CopySpec(
            id="copy-peas-upload",
            description="Copy PEASS-ng files into Upload",
            source="{home}/Tools/peas-ng",
            destination="{home}/Upload/peas-ng",
            depends_on=peass_steps + ["linpeas-executable"],
        ),
        HistorySpec(
            id="shell-history",
            description="Add common commands to .zsh_history",
            path="{home}/.zsh_history",
            lines=HISTORY,
        ),
        ChownSpec(
            id="ownership",
            description="Hand created files to the invoking user",
            paths=[
                "{home}/Tools",
                "{home}/Upload",
                "{home}/Shellcode_Loaders",
                "{home}/web_upload.py",
                "{home}/.zsh_history",
            ],
            depends_on=copies + ["download-web-upload", "shell-history"],
        ),
    ]

    return PlanSpec(
        name="workstation",
        description="Tools, upload folders and shell history under the user's home",
        notes=["All tools and directories reside under {home}, owned by {user}."],
        steps=steps,
    )
