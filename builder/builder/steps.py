"""LFS build step definitions and pure queries over them.

The default sequence is a representative subset of the LFS 11.2 book,
covering every phase. Order within a phase is execution order.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence

from .models import PHASE_ORDER, BuildPhase, BuildStatus, BuildStep, UserContext

LFS_BUILD_STEPS: tuple[BuildStep, ...] = (
    # Initial Setup (as root)
    BuildStep(
        id="select-disk",
        name="Select Target Disk",
        description="Select the disk where LFS will be installed",
        phase=BuildPhase.INITIAL_SETUP,
        context=UserContext.ROOT,
        requires_input=True,
    ),
    BuildStep(
        id="partition-disk",
        name="Partition and Format Disk",
        description="Create and format partitions for LFS",
        phase=BuildPhase.INITIAL_SETUP,
        context=UserContext.ROOT,
        command="fdisk /dev/sdb # (n, defaults, w)\nmkfs.ext4 /dev/sdb1",
        dependencies=["select-disk"],
    ),
    BuildStep(
        id="mount-lfs",
        name="Mount LFS Filesystem",
        description="Create and mount the LFS filesystem",
        phase=BuildPhase.INITIAL_SETUP,
        context=UserContext.ROOT,
        command="mkdir -pv /mnt/lfs\nmount /dev/sdb1 /mnt/lfs",
        dependencies=["partition-disk"],
    ),
    BuildStep(
        id="set-lfs-var",
        name="Set LFS Environment Variable",
        description="Set and export the LFS environment variable",
        phase=BuildPhase.INITIAL_SETUP,
        context=UserContext.ROOT,
        command="echo 'export LFS=/mnt/lfs' >> /root/.bashrc && source /root/.bashrc",
        dependencies=["mount-lfs"],
    ),
    BuildStep(
        id="prepare-sources",
        name="Prepare LFS Sources",
        description="Extract and prepare the LFS source packages",
        phase=BuildPhase.INITIAL_SETUP,
        context=UserContext.ROOT,
        requires_input=True,
        command=(
            "cd $LFS\n"
            "cp /path/to/downloads/lfs-packages-11.2.tar .\n"
            "tar xf lfs-packages-11.2.tar\n"
            "mv 11.2-rc1 sources\n"
            "chmod -v a+wt $LFS/sources"
        ),
        dependencies=["set-lfs-var"],
    ),
    BuildStep(
        id="create-lfs-user",
        name="Create LFS User",
        description="Create the LFS user for building packages",
        phase=BuildPhase.INITIAL_SETUP,
        context=UserContext.ROOT,
        requires_input=True,
        command=(
            "groupadd lfs\n"
            "useradd -s /bin/bash -g lfs -m -k /dev/null lfs\n"
            "passwd lfs # prompts for password"
        ),
        dependencies=["prepare-sources"],
    ),
    # LFS User Build
    BuildStep(
        id="setup-lfs-env",
        name="Set Up LFS User Environment",
        description="Write .bash_profile and .bashrc for the lfs user",
        phase=BuildPhase.LFS_USER_BUILD,
        context=UserContext.LFS_USER,
        command=(
            "cat > ~/.bash_profile << \"EOF\"\n"
            "exec env -i HOME=$HOME TERM=$TERM PS1='\\u:\\w\\$ ' /bin/bash\n"
            "EOF\n"
            "source ~/.bash_profile"
        ),
        dependencies=["create-lfs-user"],
    ),
    BuildStep(
        id="run-cross-toolchain",
        name="Run Cross-Toolchain Script",
        description="Build the cross-toolchain using lfs-cross.sh",
        phase=BuildPhase.LFS_USER_BUILD,
        context=UserContext.LFS_USER,
        command="sh $LFS/lfs-cross.sh | tee $LFS/lfs-cross.log",
        estimated_time=3600,
        dependencies=["setup-lfs-env"],
    ),
    # Chroot Setup
    BuildStep(
        id="prepare-virtual-kernel",
        name="Prepare Virtual Kernel File Systems",
        description="Mount /dev, /proc, /sys and /run inside $LFS",
        phase=BuildPhase.CHROOT_SETUP,
        context=UserContext.ROOT,
        command=(
            "mkdir -pv $LFS/{dev,proc,sys,run}\n"
            "mount -v --bind /dev $LFS/dev\n"
            "mount -vt proc proc $LFS/proc\n"
            "mount -vt sysfs sysfs $LFS/sys\n"
            "mount -vt tmpfs tmpfs $LFS/run"
        ),
        dependencies=["run-cross-toolchain"],
    ),
    BuildStep(
        id="enter-chroot",
        name="Enter Chroot Environment",
        description="Enter the chroot environment for system building",
        phase=BuildPhase.CHROOT_SETUP,
        context=UserContext.ROOT,
        command=(
            'chroot "$LFS" /usr/bin/env -i HOME=/root TERM="$TERM" '
            "PS1='(lfs chroot) \\u:\\w\\$ ' PATH=/usr/bin:/usr/sbin /bin/bash --login"
        ),
        dependencies=["prepare-virtual-kernel"],
    ),
    # Chroot Build
    BuildStep(
        id="run-system-build",
        name="Run System Build Script",
        description="Build the final system packages inside chroot",
        phase=BuildPhase.CHROOT_BUILD,
        context=UserContext.CHROOT,
        command="sh /sources/lfs-system.sh | tee /sources/lfs-system.log",
        estimated_time=7200,
        dependencies=["enter-chroot"],
    ),
    # System Configuration
    BuildStep(
        id="set-root-password-chroot",
        name="Set Root Password (Chroot)",
        description="Set the root password for the new system",
        phase=BuildPhase.SYSTEM_CONFIGURATION,
        context=UserContext.CHROOT,
        requires_input=True,
        command="passwd root # prompts for password",
        dependencies=["run-system-build"],
    ),
    BuildStep(
        id="configure-network",
        name="Configure Network",
        description="Write the hostname and a DHCP network configuration",
        phase=BuildPhase.SYSTEM_CONFIGURATION,
        context=UserContext.CHROOT,
        command=(
            "echo lfs > /etc/hostname\n"
            "cat > /etc/sysconfig/ifconfig.eth0 << \"EOF\"\n"
            "ONBOOT=yes\n"
            "SERVICE=dhcpcd\n"
            "EOF"
        ),
        dependencies=["set-root-password-chroot"],
    ),
    # Final Steps
    BuildStep(
        id="build-kernel",
        name="Build Linux Kernel",
        description="Configure, compile and install the kernel",
        phase=BuildPhase.FINAL_STEPS,
        context=UserContext.CHROOT,
        command="make mrproper\nmake defconfig\nmake\nmake modules_install",
        estimated_time=1800,
        dependencies=["configure-network"],
    ),
    BuildStep(
        id="install-bootloader",
        name="Install GRUB Bootloader",
        description="Install GRUB and write grub.cfg",
        phase=BuildPhase.FINAL_STEPS,
        context=UserContext.CHROOT,
        command="grub-install /dev/sdb\ngrub-mkconfig -o /boot/grub/grub.cfg",
        dependencies=["build-kernel"],
    ),
)


def initial_steps(definition: Iterable[BuildStep] = LFS_BUILD_STEPS) -> list[BuildStep]:
    """Return fresh, mutable, all-pending copies of a step definition."""
    return [
        step.model_copy(
            update={"status": BuildStatus.PENDING, "started_at": None, "completed_at": None},
            deep=True,
        )
        for step in definition
    ]


def group_by_phase(steps: Iterable[BuildStep]) -> dict[BuildPhase, list[BuildStep]]:
    """Group steps by phase, preserving their relative order.

    Only phases that contain at least one step appear in the result,
    keyed in the order of their first appearance.
    """
    grouped: dict[BuildPhase, list[BuildStep]] = {}
    for step in steps:
        grouped.setdefault(step.phase, []).append(step)
    return grouped


def phase_completion(
    steps_by_phase: Mapping[BuildPhase, Sequence[BuildStep]],
) -> dict[BuildPhase, bool]:
    """Report, per phase, whether every step is completed or skipped."""
    return {
        phase: all(step.status.is_done for step in phase_steps)
        for phase, phase_steps in steps_by_phase.items()
    }


def compute_progress(steps: Sequence[BuildStep]) -> int:
    """Percentage of completed or skipped steps, rounded half up."""
    if not steps:
        return 0
    done = sum(1 for step in steps if step.status.is_done)
    return math.floor(100 * done / len(steps) + 0.5)


def next_phase(phase: BuildPhase) -> BuildPhase | None:
    """Phase following ``phase`` in the fixed order, or None for the last one."""
    index = PHASE_ORDER.index(phase)
    if index < len(PHASE_ORDER) - 1:
        return PHASE_ORDER[index + 1]
    return None


def dependencies_satisfied(step: BuildStep, steps: Sequence[BuildStep]) -> bool:
    """Whether all declared dependencies of ``step`` are completed or skipped.

    Unknown dependency ids are treated as satisfied; see
    :func:`validate_dependencies` for reporting them.
    """
    by_id = {s.id: s for s in steps}
    return all(by_id[dep].status.is_done for dep in step.dependencies if dep in by_id)


def validate_dependencies(steps: Sequence[BuildStep]) -> dict[str, list[str]]:
    """Find declared dependencies that do not name a step in the sequence.

    Returns:
        Mapping of step id to its unknown dependency ids (empty if valid).
    """
    known = {step.id for step in steps}
    problems: dict[str, list[str]] = {}
    for step in steps:
        missing = [dep for dep in step.dependencies if dep not in known]
        if missing:
            problems[step.id] = missing
    return problems
