"""
Brand Studio - Blog Tests
"""
from app.database import db
from app.models.db_models import DBBlog, DBCampaign
from app.services.blog_service import (
    allocate_slug, strip_subscribe_placeholders, absolutize_images, build_campaign_html
)

BLOG = {
    'title': 'Why I Started',
    'category': 'Leadership',
    'excerpt': 'The short version.',
    'content': '<p>It began with a notebook.</p>',
    'imageUrl': '/uploads/cover.jpg',
}


def _create(client, headers, **overrides):
    return client.post('/api/blogs', headers=headers, json={**BLOG, **overrides})


class TestBlogRoutes:

    def test_create_requires_fields(self, client, auth_headers):
        response = client.post('/api/blogs', headers=auth_headers, json={'title': 'Only a title'})
        assert response.status_code == 400
        assert 'category' in response.get_json()['error']

    def test_create_rejects_bad_title(self, client, auth_headers):
        assert _create(client, auth_headers, title=['Why']).status_code == 400
        assert _create(client, auth_headers, title='   ').status_code == 400
        assert DBBlog.query.count() == 0

    def test_update_rejects_non_string_title(self, client, auth_headers):
        blog = _create(client, auth_headers).get_json()['blog']

        response = client.put(f"/api/blogs/{blog['id']}", headers=auth_headers, json={'title': 42})
        assert response.status_code == 400
        assert db.session.get(DBBlog, blog['id']).title == 'Why I Started'

    def test_create_allocates_unique_slug(self, client, auth_headers):
        first = _create(client, auth_headers).get_json()['blog']
        second = _create(client, auth_headers).get_json()['blog']

        assert first['slug'] == 'why-i-started'
        assert second['slug'] == 'why-i-started-1'

    def test_drafts_hidden_from_public(self, client, auth_headers):
        _create(client, auth_headers, published=False)
        published = _create(client, auth_headers, title='Live Post', published=True).get_json()['blog']

        public = client.get('/api/blogs').get_json()['blogs']
        assert [b['id'] for b in public] == [published['id']]
        assert published['publishedAt'] is not None

        admin = client.get('/api/blogs', headers=auth_headers).get_json()['blogs']
        assert len(admin) == 2

    def test_get_by_slug(self, client, auth_headers):
        _create(client, auth_headers, published=True)

        assert client.get('/api/blogs/slug/why-i-started').status_code == 200
        assert client.get('/api/blogs/slug/missing').status_code == 404

    def test_title_change_reslugs(self, client, auth_headers):
        blog = _create(client, auth_headers).get_json()['blog']

        response = client.put(f"/api/blogs/{blog['id']}", headers=auth_headers, json={'title': 'A New Name'})
        assert response.get_json()['blog']['slug'] == 'a-new-name'

    def test_delete_unlinks_campaign(self, client, auth_headers):
        blog = _create(client, auth_headers).get_json()['blog']
        campaign = DBCampaign(subject='From blog', blog_id=blog['id'])
        db.session.add(campaign)
        db.session.commit()

        assert client.delete(f"/api/blogs/{blog['id']}", headers=auth_headers).status_code == 200
        assert db.session.get(DBBlog, blog['id']) is None
        assert db.session.get(DBCampaign, campaign.id).blog_id is None

    def test_categories(self, client, auth_headers):
        _create(client, auth_headers, published=True)
        _create(client, auth_headers, category='Health', published=False)

        assert client.get('/api/blogs/categories').get_json()['categories'] == ['Leadership']


class TestCampaignHtml:

    def test_allocate_slug_excludes_self(self, app):
        blog = DBBlog(title='T', slug='taken', category='c', excerpt='e', content='x', image_url='/i.jpg')
        db.session.add(blog)
        db.session.commit()

        assert allocate_slug('Taken') == 'taken-1'
        assert allocate_slug('Taken', exclude_id=blog.id) == 'taken'

    def test_strip_placeholders(self):
        html = '<p>a</p><div class="subscribe-snippet-placeholder"></div><p>b</p>___SUBSCRIBE_FULL_MARKER___'
        assert strip_subscribe_placeholders(html) == '<p>a</p><p>b</p>'

    def test_absolutize_images(self):
        html = '<img alt="x" src="/uploads/a.jpg"><img src="https://cdn.test/b.jpg">'
        result = absolutize_images(html, 'https://site.test')

        assert 'src="https://site.test/uploads/a.jpg"' in result
        assert 'src="https://cdn.test/b.jpg"' in result

    def test_build_campaign_html(self, app):
        blog = DBBlog(title='Hello', slug='hello', category='c', excerpt='Lead-in',
                      content='<p>Body</p>', image_url='/uploads/hero.jpg')
        html = build_campaign_html(blog, 'https://site.test')

        assert '<img src="https://site.test/uploads/hero.jpg"' in html
        assert 'https://site.test/journal' in html
        assert '{{unsubscribe_link}}' in html
        assert 'Lead-in' not in html
