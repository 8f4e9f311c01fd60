import pandas as pd
import pytest

from spatialproximitytoolbox.source_file_parsers.cell_seg_data import list_cell_seg_files
from spatialproximitytoolbox.source_file_parsers.cell_seg_data import read_cell_seg_data
from spatialproximitytoolbox.source_file_parsers.cell_seg_data import read_point_set
from spatialproximitytoolbox.source_file_parsers.cell_seg_data import source_name
from spatialproximitytoolbox.source_file_parsers.cell_seg_data import remove_common_prefix
from spatialproximitytoolbox.engine.batch import count_within_batch
from spatialproximitytoolbox.engine.settings import EngineSettings
from spatialproximitytoolbox.engine.exceptions import DataIntegrityWarning
from spatialproximitytoolbox.engine.exceptions import ValidationError

MEAN = 'Entire Cell CD8 (Opal 520) Mean (Normalized Counts, Total Weighting)'
HEADER = [
    'Path', 'Sample Name', 'Slide ID', 'Tissue Category', 'Phenotype', 'Cell ID',
    'Cell X Position', 'Cell Y Position', 'Entire Cell Area (pixels)', MEAN, 'Confidence',
    'Annotation ID',
]


def write_table(path, rows, header=None):
    lines = ['\t'.join(header or HEADER)] + ['\t'.join(map(str, row)) for row in rows]
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    return path


def sample_rows(sample='sample1.im3', slide='slideA'):
    return [
        ['p', sample, slide, 'Tumor', 'X', 1, 0, 0, 40, 1.5, '95.5%', ''],
        ['p', sample, slide, 'Tumor', 'Y', 2, 6, 0, 20, 0.5, '80%', ''],
        ['p', sample, slide, 'Stroma', 'Y', 3, 200, 0, 20, 0.25, '100%', ''],
    ]


def test_read_and_convert(tmp_path):
    path = write_table(tmp_path / 'a_cell_seg_data.txt', sample_rows())
    df = read_cell_seg_data(path)
    assert df['Cell X Position'].tolist() == [0.0, 3.0, 100.0]
    assert df['Entire Cell Area (square microns)'].tolist() == [10.0, 5.0, 5.0]
    assert 'Entire Cell CD8 (Opal 520) Mean' in df.columns
    assert df['Confidence'].tolist() == pytest.approx([0.955, 0.8, 1.0])
    assert 'Annotation ID' not in df.columns
    assert 'tag' not in df.columns


def test_no_conversion(tmp_path):
    path = write_table(tmp_path / 'a_cell_seg_data.txt', sample_rows())
    df = read_cell_seg_data(path, pixels_per_micron=None, remove_units=False)
    assert df['Cell X Position'].tolist() == [0, 6, 200]
    assert 'Entire Cell Area (pixels)' in df.columns
    assert MEAN in df.columns


def test_already_in_microns(tmp_path):
    header = [name.replace('(pixels)', '(square microns)') for name in HEADER]
    path = write_table(tmp_path / 'a_cell_seg_data.txt', sample_rows(), header=header)
    df = read_cell_seg_data(path)
    assert df['Cell X Position'].tolist() == [0, 6, 200]


def test_comma_decimal_mark(tmp_path):
    rows = [row[:9] + [str(row[9]).replace('.', ',')] + row[10:] for row in sample_rows()]
    path = write_table(tmp_path / 'a_cell_seg_data.txt', rows)
    df = read_cell_seg_data(path)
    assert df['Entire Cell CD8 (Opal 520) Mean'].tolist() == [1.5, 0.5, 0.25]


def test_character_expression_values(tmp_path):
    rows = [row[:9] + ['high'] + row[10:] for row in sample_rows()]
    path = write_table(tmp_path / 'a_cell_seg_data.txt', rows)
    with pytest.raises(ValidationError):
        read_cell_seg_data(path)


def test_missing_key_values_warn(tmp_path):
    rows = sample_rows()
    rows[1][4] = 'NA'
    path = write_table(tmp_path / 'a_cell_seg_data.txt', rows)
    with pytest.warns(DataIntegrityWarning, match='Phenotype'):
        df = read_cell_seg_data(path)
    assert pd.isna(df['Phenotype'].iloc[1])


def test_tag_for_multiple_samples(tmp_path):
    rows = sample_rows('run_sampleA.im3')[:2] + sample_rows('run_sampleB.im3')[2:]
    path = write_table(tmp_path / 'a_cell_seg_data.txt', rows)
    df = read_cell_seg_data(path)
    assert df['tag'].tolist() == ['A', 'A', 'B']


def test_remove_common_prefix():
    assert remove_common_prefix(['abc1', 'abc2']) == ['1', '2']
    assert remove_common_prefix(['same', 'same']) == ['same', 'same']


def test_point_set(tmp_path):
    path = write_table(tmp_path / 'a_cell_seg_data.txt', sample_rows())
    point_set = read_point_set(path)
    assert len(point_set) == 3
    assert point_set.require_single_field() == 'sample1.im3'
    assert point_set.slide_identifier == 'slideA'
    assert point_set.phenotypes == ['X', 'Y']
    assert point_set.locations[:, 0].tolist() == [0.0, 3.0, 100.0]
    assert list(point_set.category_mask('Tumor')) == [True, True, False]


def test_listing_and_names(tmp_path):
    write_table(tmp_path / 'b_cell_seg_data.txt', sample_rows())
    write_table(tmp_path / 'a_cell_seg_data.txt', sample_rows())
    (tmp_path / 'notes.txt').write_text('nothing', encoding='utf-8')
    files = list_cell_seg_files(tmp_path)
    assert [source_name(file) for file in files] == ['a', 'b']


def test_directory_batch(tmp_path):
    write_table(tmp_path / 'field1_cell_seg_data.txt', sample_rows())
    merged = sample_rows('run_sampleA.im3')[:2] + sample_rows('run_sampleB.im3')[2:]
    write_table(tmp_path / 'field2_cell_seg_data.txt', merged)
    result = count_within_batch(str(tmp_path), [('X', 'Y')], 5, category=['Tumor'],
                                settings=EngineSettings(strategy='dense', verbose=False))
    assert result.succeeded == ['field1']
    assert result.failed == ['field2']
    table = result.table
    assert table['source'].tolist() == ['field1']
    assert table['slide_id'].tolist() == ['slideA']
    assert table['from_with'].tolist() == [1]
    assert table['within_mean'].tolist() == [1.0]
