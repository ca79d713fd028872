"""
Test reading the cohort from the sample map.
"""

import pytest

from jc_workflows.exceptions import MalformedInputError
from jc_workflows.inputs import load_cohort, read_sample_map, write_sample_map

from .factories.cohort import create_cohort, write_sample_map_file


def test_load_cohort(tmp_path):
    path = write_sample_map_file(
        tmp_path / 'sample_map.tsv',
        [('CPG01', 'gs://bucket/CPG01.g.vcf.gz'), ('CPG02', 'gs://bucket/CPG02.g.vcf.gz')],
    )
    cohort = load_cohort('test', path)
    assert len(cohort) == 2
    assert cohort.get_sample_ids() == ['CPG01', 'CPG02']
    assert str(cohort.gvcf_by_sample['CPG02'].index_path) == 'gs://bucket/CPG02.g.vcf.gz.tbi'


def test_comments_and_whitespace(tmp_path):
    path = tmp_path / 'sample_map.tsv'
    path.write_text('# sample\tgvcf\nCPG01\t/data/CPG01.g.vcf.gz \n')
    assert read_sample_map(path) == {'CPG01': '/data/CPG01.g.vcf.gz'}


@pytest.mark.parametrize(
    'content,match',
    [
        ('', 'empty'),
        ('CPG01\n', '2 columns'),
        ('CPG01\ta.g.vcf.gz\textra\n', '2 columns'),
        ('CPG01\ta.g.vcf.gz\nCPG01\tb.g.vcf.gz\n', 'duplicated samples: CPG01'),
        ('CPG01\ta.g.vcf.gz\nCPG02\t\n', 'empty values'),
    ],
)
def test_malformed(tmp_path, content: str, match: str):
    path = tmp_path / 'sample_map.tsv'
    path.write_text(content)
    with pytest.raises(MalformedInputError, match=match):
        read_sample_map(path)


def test_missing(tmp_path):
    with pytest.raises(MalformedInputError, match='does not exist'):
        read_sample_map(tmp_path / 'missing.tsv')


def test_write_sample_map_round_trip(tmp_path):
    cohort = create_cohort(tmp_path / 'gvcfs', 3, touch=False)
    path = write_sample_map(cohort, tmp_path / 'out' / 'sample_map.tsv')
    assert read_sample_map(path) == {sid: str(gvcf.path) for sid, gvcf in cohort.gvcf_by_sample.items()}
    assert path.read_text().splitlines()[0] == f'CPG000001\t{tmp_path}/gvcfs/CPG000001.g.vcf.gz'


def test_inputs_hash_depends_on_composition(tmp_path):
    three = create_cohort(tmp_path, 3, touch=False)
    two = create_cohort(tmp_path, 2, touch=False)
    assert three.alignment_inputs_hash() != two.alignment_inputs_hash()
    assert three.alignment_inputs_hash().endswith('_3')
