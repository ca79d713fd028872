import pytest

from jc_workflows.filetypes import Artifact, RecalibrationModel, VariantClass
from jc_workflows.jobs.vqsr import apply_recalibration_snps, make_vqsr_jobs, snp_max_gaussians
from jc_workflows.routing import route
from jc_workflows.targets import RecalibrationShard

from ..factories.batch import create_local_batch
from ..factories.config import create_config
from .helpers import get_command_str, input_paths, jobs_named


def _shards(tmp_path, n: int = 3) -> list[RecalibrationShard]:
    return [
        RecalibrationShard(
            index=i,
            filtered_vcf=Artifact.vcf(tmp_path / 'excess-filter' / f'part{i + 1}.vcf.gz'),
            siteonly_vcf=Artifact.vcf(tmp_path / 'siteonly' / f'part{i + 1}.vcf.gz'),
        )
        for i in range(n)
    ]


class TestVqsr:
    def _make(self, tmp_path, num_samples: int, n_shards: int = 3, overrides=None):
        config = create_config(tmp_path, overrides)
        b = create_local_batch(tmp_path)
        results = make_vqsr_jobs(
            b,
            siteonly_vcf=Artifact.vcf(tmp_path / 'siteonly.vcf.gz'),
            shards=_shards(tmp_path, n_shards),
            route=route(num_samples),
            config=config,
            tmp_prefix=tmp_path / 'vqsr',
            out_prefix=tmp_path / 'out',
        )
        return b, results

    def test_single_shot_snp_model(self, tmp_path):
        b, results = self._make(tmp_path, 500)
        assert len(jobs_named(b, 'VQSR: IndelsVariantRecalibrator')) == 1
        assert len(jobs_named(b, 'VQSR: SNPsVariantRecalibrator')) == 1
        assert not jobs_named(b, 'VQSR: SNPsVariantRecalibratorCreateModel')
        assert not jobs_named(b, 'VQSR: SNPsVariantRecalibratorScattered')
        assert not jobs_named(b, 'VQSR: SNPGatherTranches')
        assert len(jobs_named(b, 'VQSR: ApplyVQSR INDEL')) == 3
        assert len(jobs_named(b, 'VQSR: ApplyVQSR SNP')) == 3
        assert all(r.snp_recalibration is None for r in results)

        snp_j = jobs_named(b, 'VQSR: SNPsVariantRecalibrator')[0]
        cmd = get_command_str(snp_j)
        assert '--sample-every-Nth-variant' not in cmd
        assert '--max-gaussians 4' in cmd
        assert '-mode SNP' in cmd
        assert '-an AS_MQ' in cmd

    def test_scattered_snp_model(self, tmp_path):
        b, results = self._make(tmp_path, 12000, n_shards=4)
        create_model = jobs_named(b, 'VQSR: SNPsVariantRecalibratorCreateModel')
        scattered = jobs_named(b, 'VQSR: SNPsVariantRecalibratorScattered')
        gather_tranches = jobs_named(b, 'VQSR: SNPGatherTranches')
        assert len(create_model) == 1
        assert len(scattered) == 4
        assert len(gather_tranches) == 1
        assert not jobs_named(b, 'VQSR: SNPsVariantRecalibrator')

        assert '--sample-every-Nth-variant 75' in get_command_str(create_model[0])
        assert '--max-gaussians 6' in get_command_str(create_model[0])
        # The model report is trained once and reused by every shard
        for j in scattered:
            assert list(b.graph.predecessors(j)) == create_model
            assert '--output-tranches-for-scatter' in get_command_str(j)
        # Fan-in of all scattered tranches
        assert set(b.graph.predecessors(gather_tranches[0])) == set(scattered)
        for r in results:
            assert r.snp_recalibration is not None
            assert r.snp_recalibration.tranches.path == tmp_path / 'vqsr' / 'snp-gathered.tranches'

    def test_indel_before_snp_on_every_shard(self, tmp_path):
        b, results = self._make(tmp_path, 12000)
        for r in results:
            indel_j = b.producer_of(r.indel_applied_vcf)
            snp_j = b.producer_of(r.recalibrated_vcf)
            assert indel_j.name == 'VQSR: ApplyVQSR INDEL'
            assert snp_j.name == 'VQSR: ApplyVQSR SNP'
            assert indel_j in b.graph.predecessors(snp_j)
            assert input_paths(indel_j)[0] == str(r.shard.filtered_vcf.path)
            assert input_paths(snp_j)[0] == str(r.indel_applied_vcf.path)
            assert '--truth-sensitivity-filter-level 99.0' in get_command_str(indel_j)
            assert '--truth-sensitivity-filter-level 99.7' in get_command_str(snp_j)
            assert r.recalibrated_vcf.path == tmp_path / 'out' / f'part{r.shard.label}.vcf.gz'

    @pytest.mark.parametrize('num_samples', [500, 12000])
    def test_indel_and_snp_training_independent(self, tmp_path, num_samples: int):
        b, _ = self._make(tmp_path, num_samples)
        indel_j = jobs_named(b, 'VQSR: IndelsVariantRecalibrator')[0]
        assert b.graph.in_degree(indel_j) == 0
        snp_training = [j for j in b.jobs if j.name.startswith('VQSR: SNPs')]
        for j in snp_training:
            assert indel_j not in b.graph.predecessors(j)
            assert j not in b.graph.predecessors(indel_j)

    def test_standard_annotations(self, tmp_path):
        b, _ = self._make(tmp_path, 500, overrides={'workflow': {'use_as_annotations': False}})
        cmd = get_command_str(jobs_named(b, 'VQSR: IndelsVariantRecalibrator')[0])
        assert '--use-allele-specific-annotations' not in cmd
        assert '-an QD' in cmd
        assert '-an AS_QD' not in cmd

    def test_reuse_trained_models(self, tmp_path):
        for name in ['indel.recal', 'indel.recal.idx', 'indel.tranches']:
            (tmp_path / 'vqsr').mkdir(exist_ok=True)
            (tmp_path / 'vqsr' / name).touch()
        b, _ = self._make(tmp_path, 500)
        assert not jobs_named(b, 'VQSR: IndelsVariantRecalibrator')
        assert len(jobs_named(b, 'VQSR: ApplyVQSR INDEL')) == 3

    def test_no_shards(self, tmp_path):
        with pytest.raises(ValueError):
            self._make(tmp_path, 500, n_shards=0)

    def test_model_class_checked(self, tmp_path):
        model = RecalibrationModel(
            VariantClass.INDEL,
            recalibration=Artifact.single(tmp_path / 'indel.recal'),
            tranches=Artifact.single(tmp_path / 'indel.tranches'),
        )
        with pytest.raises(ValueError, match='SNP'):
            apply_recalibration_snps(
                create_local_batch(tmp_path),
                Artifact.vcf(tmp_path / 'in.vcf.gz'),
                model,
                route(500),
                create_config(tmp_path),
                tmp_path / 'out.vcf.gz',
            )


def test_snp_max_gaussians():
    assert snp_max_gaussians(route(500)) == 4
    assert snp_max_gaussians(route(5000)) == 6
    assert snp_max_gaussians(route(100000)) == 8
