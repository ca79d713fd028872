import threading
from pathlib import Path

from jc_workflows.batch import Job
from jc_workflows.exceptions import TaskError
from jc_workflows.runner import Backend

SITES_PER_SHARD = 3


def read_sites(path: Path | str) -> list[list[str]]:
    """
    Sites of a simulated VCF: `chrom:pos` followed by the filter tags, in the
    order they were added.
    """
    return [line.split('\t') for line in Path(path).read_text().splitlines() if line]


class SimulatedBackend(Backend):
    """
    Stands in for the external tools. VCFs are plain text, one site per line:
    genotyping creates a few sites per interval chain, gathering concatenates
    the inputs, and applying a recalibration model appends its variant class
    as a tag. Other outputs are written with placeholder content.

    `failures` maps a job name to errors raised on consecutive calls for that
    name; once they are used up the job runs normally.
    """

    def __init__(self, failures: dict[str, list[TaskError]] | None = None):
        self.failures = {name: list(errors) for name, errors in (failures or {}).items()}
        self.calls: list[Job] = []
        self._lock = threading.Lock()

    def names(self) -> list[str]:
        return [j.name for j in self.calls]

    def count(self, name: str) -> int:
        return sum(1 for j in self.calls if j.name == name)

    def run(self, job: Job) -> None:
        with self._lock:
            self.calls.append(job)
            errors = self.failures.get(job.name) or self.failures.get(f'{job.name} #{job.attributes.get("part")}')
            if errors:
                raise errors.pop(0)

        job.scratch_dir.mkdir(parents=True, exist_ok=True)
        for artifact in job.outputs.values():
            if str(artifact.path).endswith('.vcf.gz'):
                artifact.path.write_text(''.join('\t'.join(site) + '\n' for site in self._sites(job)))
            else:
                artifact.path.write_text(f'{job.name}\n')
            if artifact.index_path:
                artifact.index_path.write_text('')

    @staticmethod
    def _sites(job: Job) -> list[list[str]]:
        tool = job.attributes.get('tool', '')
        if tool.startswith('gatk GenotypeGVCFs') or tool.startswith('gatk GnarlyGenotyper'):
            interval = job.attributes['interval']
            return [[f'{interval}:{i}'] for i in range(SITES_PER_SHARD)]

        vcf_inputs = [a for a in job.inputs if str(a.path).endswith('.vcf.gz')]
        if job.name.startswith('VQSR: ApplyVQSR'):
            variant_class = job.name.split()[-1]
            return [site + [variant_class] for site in read_sites(vcf_inputs[0].path)]
        if tool == 'bcftools concat':
            return [site for vcf in vcf_inputs for site in read_sites(vcf.path)]
        return read_sites(vcf_inputs[0].path)
